#! /usr/bin/env python3

import re
import string

__all__ = ["encode", "decode", "urlencode", "urldecode"]

def encode(str_, escape_char="%", skip_chars="", special_map=None, charset="utf-8"):
    """
    Generalized implementation of a `percent encoding`_ algorithm.

    .. _`percent encoding`: https://en.wikipedia.org/wiki/Percent-encoding

    :param str_: the string to be encoded
    :param escape_char: character to be used as escape (by default '%')
    :param skip_chars: characters which are left as they are
    :param special_map: a mapping overriding default encoding (applied after
        ``skip_chars``)
    :param charset: character set used to encode non-ASCII characters to byte
        sequence with :py:meth:`str.encode()`
    """
    output = []
    for char in str_:
        if char in skip_chars:
            output.append(char)
        elif special_map is not None and char in special_map:
            output.append(special_map[char])
        else:
            output.extend("{}{:02X}".format(escape_char, byte) for byte in char.encode(charset))
    return "".join(output)

def decode(str_, escape_char="%", special_map=None, charset="utf-8", errors="strict"):
    """
    An inverse function to :py:func:`encode`.

    :param str_: the string to be decoded
    :param escape_char: character used as escape (by default '%')
    :param special_map: the inverse of the mapping passed to :py:func:`encode`
    :param charset: character set of the encoded byte sequences
    :param errors: passed to :py:meth:`bytes.decode()`
    """
    tok = re.compile(re.escape(escape_char) + "([0-9A-Fa-f]{2})|(.)", re.DOTALL)
    output = []
    barr = bytearray()
    for match in tok.finditer(str_):
        enc_couple, char = match.groups()
        if enc_couple:
            barr.append(int(enc_couple, 16))
            continue
        if barr:
            output.append(barr.decode(charset, errors))
            barr = bytearray()
        if special_map is not None and char in special_map:
            output.append(special_map[char])
        else:
            output.append(char)
    if barr:
        output.append(barr.decode(charset, errors))
    return "".join(output)

def urlencode(str_):
    """
    Standard URL encoding of a path segment, spaces are encoded as underscores.
    """
    skipped = string.ascii_letters + string.digits + "-_.~:"
    return encode(str_, skip_chars=skipped, special_map={" ": "_"})

def urldecode(str_):
    """
    An inverse function to :py:func:`urlencode`.
    """
    return decode(str_, special_map={"_": " "})
