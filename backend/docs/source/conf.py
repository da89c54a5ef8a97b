import pathlib
import sys

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent.parent))

project = 'Restaurant Geo Assets API'
release = '0.1.0'

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
]

napoleon_google_docstring = True
napoleon_numpy_docstring = False

autodoc_default_options = {
    'members': True,
    'show-inheritance': True,
}

# importing geoassets.db must not require the storage or database clients
autodoc_mock_imports = ['supabase', 'psycopg2']
