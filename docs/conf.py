# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Sphinx configuration for genro-mapper documentation."""

import os
import sys

sys.path.insert(0, os.path.abspath("../src"))

from genro_mapper import __version__  # noqa: E402

project = "genro-mapper"
copyright = "2025, Softwell S.r.l."
author = "Genropy Team"
release = __version__

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_typehints",
    "myst_parser",
]

# Google-style docstrings only
napoleon_numpy_docstring = False

autodoc_default_options = {
    "members": True,
    "member-order": "bysource",
    "exclude-members": "__weakref__, __init__",
}
autodoc_typehints = "description"
autodoc_mock_imports = ["psycopg", "psycopg_pool"]

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "aiosqlite": ("https://aiosqlite.omnilib.dev/en/stable", None),
    "psycopg": ("https://www.psycopg.org/psycopg3/docs", None),
}

html_theme = "furo"
html_title = f"genro-mapper {release}"

source_suffix = {".md": "markdown"}
master_doc = "index"
exclude_patterns = ["_build"]
