"""
Punto de entrada: python -m glbtool
"""

from glbtool.cli import main

if __name__ == "__main__":
    main()
