import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../../src')))

project = 'DeFi-AMM'
copyright = '2025, Auralshin'
author = 'Auralshin'
release = '1.0.0'

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
]

# mesa, pandas and numpy are only needed at runtime
autodoc_mock_imports = ['mesa', 'pandas', 'numpy', 'yaml']
autodoc_member_order = 'bysource'

templates_path = ['_templates']
exclude_patterns = []

html_theme = 'furo'
html_title = 'DeFi-AMM'

napoleon_google_docstring = True
napoleon_numpy_docstring = True
napoleon_include_init_with_doc = True
napoleon_include_private_with_doc = False
