# Sphinx configuration for the ReciboDocs API docs.
# Build from the repo root:  sphinx-build -b html . _build/html

import os
import sys

# app/ and extraction/ are namespace packages at the repo root
sys.path.insert(0, os.path.abspath("."))

# -- Project -----------------------------------------------------------------
project = "ReciboDocs"
author = "ReciboDocs contributors"
copyright = "2025, ReciboDocs contributors"
release = "0.1.0"

# -- Extensions --------------------------------------------------------------
extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx.ext.autosummary",
]
autosummary_generate = True

# The UI module runs Streamlit calls at import time; document the services only.
autodoc_mock_imports = ["streamlit"]

autodoc_default_options = {
    "members": True,
    "undoc-members": False,
    "show-inheritance": True,
}
autodoc_typehints = "description"
autodoc_member_order = "bysource"

# Module docstrings are bullet lists; Google-style sections where present.
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_use_rtype = False

templates_path = ["_templates"]
exclude_patterns = ["_build", "tests", "scripts", ".recibodocs", "Thumbs.db", ".DS_Store"]

# -- HTML --------------------------------------------------------------------
html_theme = "alabaster"
html_static_path = []
html_title = f"{project} {release}"
pygments_style = "sphinx"
