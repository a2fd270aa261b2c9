# repository/namespaces.py
from typing import Final

ROOT: Final[str] = "portfolio"

KNOWLEDGE: Final[str] = f"{ROOT}:knowledge"  # hash: entry id -> JSON record
