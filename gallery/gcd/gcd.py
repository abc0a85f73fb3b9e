#!/usr/bin/env python3
"""Reads two integers, one per line, and prints their greatest common divisor.

Try it with:

    lineoracle "python3 gallery/gcd/gcd.py" gallery/gcd/gcd.json

Both inputs are drawn from ranges that include zero, so sooner or later
lineoracle sends ``0`` twice and finds the crash.
"""

import sys


def gcd(a: int, b: int) -> int:
    while b != 0:
        a, b = b, a % b
    return a


def main() -> None:
    a = int(sys.stdin.readline())
    b = int(sys.stdin.readline())
    if a == 0 and b == 0:
        raise ValueError("gcd(0, 0) is undefined")
    print(gcd(abs(a), abs(b)))


if __name__ == "__main__":
    main()
