"""Allow ``python -m coordbridge {locks,permissions}``."""
from .cli import main

main()
