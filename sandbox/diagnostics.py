"""
Classification of sandbox failure output.

The Python runtime reports a missing import only as free text
("ModuleNotFoundError: No module named 'foo'"), so detection is a pattern
match on the captured output. Import names that differ from their PyPI
distribution names are mapped through _DISTRIBUTION_ALIASES.
"""

import re
from dataclasses import dataclass

_MISSING_MODULE = re.compile(r"No module named ['\"]([A-Za-z_][A-Za-z0-9_.]*)['\"]")

_DISTRIBUTION_ALIASES = {
    "yaml": "pyyaml",
    "sklearn": "scikit-learn",
    "PIL": "pillow",
    "cv2": "opencv-python",
    "bs4": "beautifulsoup4",
    "dateutil": "python-dateutil",
    "dotenv": "python-dotenv",
    "jwt": "pyjwt",
    "serial": "pyserial",
    "Crypto": "pycryptodome",
}


@dataclass(frozen=True)
class MissingDependency:
    # Top-level module the runtime could not import
    module: str
    # Distribution name handed to the installer
    package: str


def package_for_module(module: str) -> str:
    top_level = module.split(".", 1)[0]
    return _DISTRIBUTION_ALIASES.get(top_level, top_level)


def detect_missing_dependency(output: str) -> MissingDependency | None:
    """Return the first missing module reported in output, if any."""
    match = _MISSING_MODULE.search(output)
    if not match:
        return None
    module = match.group(1).split(".", 1)[0]
    return MissingDependency(module=module, package=package_for_module(module))
