"""
Diagnostic stream parsing for compile chains.

The typesetter reports problems on stdout as `! Error message` lines; the
measurer (Ghostscript bbox device) reports the inked area on stderr:

    %%BoundingBox: 10 20 110 70
    %%HiResBoundingBox: 10.043 20.112 109.871 69.984

Only the high-resolution line is used.
"""

import re
from dataclasses import dataclass
from typing import List

NUMBER = r"(-?(?:\d+\.?\d*|\.\d+))"
HIRES_BBOX_PATTERN = re.compile(
    rf"HiResBoundingBox:\s*{NUMBER}\s+{NUMBER}\s+{NUMBER}\s+{NUMBER}"
)
LATEX_ERROR_PATTERN = re.compile(r"^! (.+)$", re.MULTILINE)


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned rectangle in PDF points.

    (x, y) is the lower-left corner in PDF user space, which grows upward from
    the bottom of the page.
    """

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @classmethod
    def from_corners(cls, x0: float, y0: float, x1: float, y1: float) -> "BoundingBox":
        return cls(x=x0, y=y0, width=x1 - x0, height=y1 - y0)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


ZERO_BOX = BoundingBox()


def parse_bbox_output(output: str) -> BoundingBox:
    """
    Extract the first HiResBoundingBox from measurer output.

    Args:
        output: Diagnostic (stderr) text of the measuring stage

    Returns:
        Parsed box as (x0, y0, x1 - x0, y1 - y0), or ZERO_BOX if no line matches
    """
    match = HIRES_BBOX_PATTERN.search(output)
    if match is None:
        return ZERO_BOX
    x0, y0, x1, y1 = (float(value) for value in match.groups())
    return BoundingBox.from_corners(x0, y0, x1, y1)


def parse_latex_errors(output: str) -> List[str]:
    """Collect `! ...` error lines from typesetter output, in order."""
    return [match.group(1).strip() for match in LATEX_ERROR_PATTERN.finditer(output)]
