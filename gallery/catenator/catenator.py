#!/usr/bin/env python3
"""Reads six lines and prints them joined together with whitespace trimmed.

    lineoracle "python3 gallery/catenator/catenator.py" gallery/catenator/catenator.json
"""

import sys


def main() -> None:
    print("".join(sys.stdin.readline().strip() for _ in range(6)))


if __name__ == "__main__":
    main()
