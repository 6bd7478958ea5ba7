from tests.fixtures.database import *
from tests.fixtures.wiki import *
