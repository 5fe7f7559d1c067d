import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13", "3.14"]

# psycopg2 ships a C extension that must match the session's interpreter.
_C_EXT_PACKAGES = ["psycopg2-binary"]

# Test layers, each marked from its directory by tests/conftest.py
_LAYERS = ["domain", "application", "integration", "bdd"]


def _install(session: nox.Session) -> None:
    """Install the dropship engine with its test group into the nox virtualenv."""
    session.run("poetry", "install", "--with", "test", "--all-extras", external=True)
    session.run("pip", "install", "--force-reinstall", "--no-cache-dir", *_C_EXT_PACKAGES)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run every dropship test layer."""
    _install(session)
    session.run("pytest", *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
@nox.parametrize("layer", _LAYERS)
def tests_layer(session: nox.Session, layer: str) -> None:
    """Run a single layer, e.g. ``nox -s "tests_layer(layer='bdd')"``."""
    _install(session)
    session.run("pytest", "-m", layer, *session.posargs)


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_production(session: nox.Session) -> None:
    """Run the suite against the production overlay (PostgreSQL and Redis must be up)."""
    _install(session)
    session.run("pytest", "--env", "production", *session.posargs)
