from .definitions import (
    BLOG_DEFINITIONS,
    BlogArticleDefinition,
    BlogArticleSeoDefinition,
    BlogArticleTagDefinition,
    BlogArticleTranslationDefinition,
    BlogAuthorDefinition,
    BlogCommentDefinition,
    BlogTagDefinition,
)
from .demodata import BATCH_SIZE, BlogArticleGenerator, BlogTagGenerator

__all__ = [
    "BATCH_SIZE",
    "BLOG_DEFINITIONS",
    "BlogArticleDefinition",
    "BlogArticleGenerator",
    "BlogArticleSeoDefinition",
    "BlogArticleTagDefinition",
    "BlogArticleTranslationDefinition",
    "BlogAuthorDefinition",
    "BlogCommentDefinition",
    "BlogTagDefinition",
    "BlogTagGenerator",
]
