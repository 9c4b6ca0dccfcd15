# type: ignore
from invoke import task


@task
def venv(ctx):
    """Create the development environment with the test and dev extras."""
    ctx.run("uv venv")
    ctx.run('uv pip install -e ".[test,dev]"')


@task
def clean(ctx):
    """Remove build output, caches and coverage data."""
    ctx.run("rm -rf dist build .pytest_cache .mypy_cache .ruff_cache .coverage")
    ctx.run("find . -name __pycache__ -type d -prune -exec rm -rf {} +")


@task
def lint(ctx):
    """Run ruff and mypy over the package."""
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx, k=""):
    """Run the test suite with coverage; ``-k`` selects tests by keyword."""
    selector = f" -k {k}" if k else ""
    ctx.run(
        f"pytest --cov=minerwatch --cov-report=term-missing{selector}", pty=True
    )


@task
def build_package(ctx):
    """Build sdist and wheel."""
    ctx.run("rm -rf dist")
    ctx.run("uv build")


@task(pre=[lint, test])
def ci(ctx):
    """Everything CI runs."""
