"""
Smoke tests to verify all modules can be imported.
"""

def test_import_runner_core():
    import runner_core
    assert hasattr(runner_core, '__version__')


def test_import_codegen():
    import codegen
    assert hasattr(codegen, '__version__')


def test_import_bundler():
    import bundler
    assert hasattr(bundler, '__version__')


def test_import_sandbox():
    import sandbox
    assert hasattr(sandbox, '__version__')


def test_import_remote():
    import remote
    assert hasattr(remote, '__version__')


def test_import_runner():
    import runner
    assert hasattr(runner, '__version__')
