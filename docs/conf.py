# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

import os
import sys
sys.path.insert(0, os.path.abspath('..'))

from meshadapter import __version__

# -- Project information -----------------------------------------------------

project = 'meshadapter'
copyright = '2024, meshadapter authors'
author = 'meshadapter authors'
release = __version__
version = __version__

# -- General configuration ---------------------------------------------------

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx.ext.intersphinx',
    'sphinx_autodoc_typehints',
]

templates_path = ['_templates']
exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']

# -- Options for HTML output -------------------------------------------------

html_theme = 'sphinx_rtd_theme'

# -- Extension configuration -------------------------------------------------

# Napoleon settings (docstrings are Google style)
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = False
napoleon_include_special_with_doc = True
napoleon_use_param = True
napoleon_use_rtype = True
napoleon_attr_annotations = True

# Autodoc settings
autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
    'special-members': '__init__',
    'undoc-members': False,
    'exclude-members': '__weakref__,__dataclass_fields__,__dataclass_params__,__match_args__',
}
autodoc_typehints = 'description'
autodoc_typehints_description_target = 'documented'



def skip_dataclass_fields(app, what, name, obj, skip, options):
    """Skip dataclass fields already covered by the class Attributes section."""
    if what == "attribute" and 'meshadapter' in str(getattr(obj, '__module__', '')):
        if hasattr(obj.__class__, '__dataclass_fields__'):
            return True
    return skip


def setup(app):
    app.connect('autodoc-skip-member', skip_dataclass_fields)


intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
}
