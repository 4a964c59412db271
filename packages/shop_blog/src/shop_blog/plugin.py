from shop_cli import Plugin

from . import commands
from .definitions import BLOG_DEFINITIONS
from .demodata import BlogArticleGenerator, BlogTagGenerator


def create_plugin() -> Plugin:
    return Plugin(
        name="blog",
        definitions=list(BLOG_DEFINITIONS),
        generators=[BlogTagGenerator(), BlogArticleGenerator()],
        commands=[commands.register],
    )


plugin = create_plugin()
