# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# -- Project information -----------------------------------------------------

import os
import sys

# Project root on sys.path so autodoc can import engine/, bus/ and the root modules
sys.path.insert(0, os.path.abspath("../.."))

project = "Traffic Grid Engine"
copyright = "2026, Traffic Grid Engine contributors"
author = "Traffic Grid Engine contributors"
release = "0.1.0"

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",    # generate docs from docstrings
    "sphinx.ext.napoleon",   # parse NumPy / Google style docstrings
    "sphinx.ext.viewcode",   # add links to source code
    "sphinx_rtd_dark_mode",
]

templates_path = ["_templates"]
exclude_patterns = []

autodoc_member_order = "bysource"
napoleon_numpy_docstring = True
napoleon_google_docstring = True  # bus/ uses Google style

# -- Options for HTML output -------------------------------------------------

html_theme = "sphinx_rtd_theme"
default_dark_mode = True
html_static_path = []
