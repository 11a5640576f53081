"""chsources test suite.

Test organization:
- unit/test_resolver.py: literal/env/profile resolution and precedence
- unit/test_table_functions.py: table-function argument order and escaping
- unit/test_dictionaries.py: CREATE/DROP/RELOAD DICTIONARY and lookup helpers
- unit/test_config_loader.py: YAML catalogs rendering like their Python specs
- unit/test_cli.py: the chsources command line
"""
