import pytest
from shop_blog.plugin import create_plugin
from shop_cli import Kernel, create_app
from shop_core import ShopSettings
from typer.testing import CliRunner


@pytest.fixture
def settings(tmp_path):
    return ShopSettings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}",
        SYSTEM_LOCALES=["en-GB", "de-DE"],
        DEMODATA_SEED=42,
    )


@pytest.fixture
def plugins():
    return [create_plugin()]


@pytest.fixture
def app(settings, plugins):
    return create_app(settings, plugins)


@pytest.fixture
def kernel(settings, plugins):
    return Kernel(settings, plugins)


@pytest.fixture
def invoke(app):
    """Run the CLI with a wide console so tables are not wrapped."""
    runner = CliRunner()

    def _invoke(*args):
        return runner.invoke(app, list(args), env={"COLUMNS": "200"})

    return _invoke


@pytest.fixture
def installed(invoke):
    result = invoke("database:init")
    assert result.exit_code == 0, result.output
