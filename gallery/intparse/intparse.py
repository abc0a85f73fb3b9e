#!/usr/bin/env python3
"""Reads one line of comma separated integers and ``a..b`` ranges.

Prints ``ok`` once the whole line parses:

    lineoracle "python3 gallery/intparse/intparse.py" gallery/intparse/intparse.json
"""

import sys


def parse(line: str) -> list[range]:
    ranges = []
    for element in line.split(","):
        element = element.strip()
        if ".." in element:
            start, end = element.split("..", 1)
            ranges.append(range(int(start), int(end) + 1))
        else:
            number = int(element)
            ranges.append(range(number, number + 1))
    return ranges


def main() -> None:
    ranges = parse(sys.stdin.readline().rstrip("\n"))
    assert ranges
    print("ok")


if __name__ == "__main__":
    main()
