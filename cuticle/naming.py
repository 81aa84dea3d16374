"""
Output naming.
"""

import os


def output_path(source_path: str, template: str) -> str:
    """
    Destination for a thumbnail.

    Given "/photos/somefile.png" and "tn_%s.jpg" the result is
    "tn_somefile.jpg". The template is used as given, so an absolute template
    discards the source directory and a relative one is relative to the
    working directory.

    Args:
        source_path: Source image path
        template: Path with at most one '%s' placeholder for the basename
    """
    base = os.path.splitext(os.path.basename(source_path))[0]
    return template.replace('%s', base, 1)
