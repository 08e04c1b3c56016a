import hashlib
from typing import Callable, Dict

from typing_extensions import TypeAlias

HashObject = "hashlib._Hash"
HashFunction: TypeAlias = Callable[[], HashObject]
DnMap: TypeAlias = Dict[str, str]
