"""
Entity definitions of the blog plugin.

Articles are versioned and inheritance aware: a variant (``parent_id`` set)
falls back to its parent for title, teaser, content, author and tags.
"""

from shop_dal import EntityDefinition, EntityTranslationDefinition, MappingEntityDefinition
from shop_dal.fields import (
    BoolField,
    DateTimeField,
    Field,
    FkField,
    IdField,
    LongTextField,
    ManyToManyAssociationField,
    ManyToOneAssociationField,
    OneToManyAssociationField,
    OneToOneAssociationField,
    ParentFkField,
    ReferenceVersionField,
    StringField,
    TranslatedField,
    TranslationsAssociationField,
    VersionField,
)
from shop_dal.flags import (
    HIGH_SEARCH_RANKING,
    LOW_SEARCH_RANKING,
    MIDDLE_SEARCH_RANKING,
    ApiAware,
    CascadeDelete,
    Inherited,
    PrimaryKey,
    Required,
    RestrictDelete,
    ReverseInherited,
    SearchRanking,
)


class BlogAuthorDefinition(EntityDefinition):
    ENTITY_NAME = "blog_author"

    def define_fields(self) -> list[Field]:
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            StringField("name", "name").add_flags(
                Required(), ApiAware(), SearchRanking(HIGH_SEARCH_RANKING)
            ),
            StringField("email", "email", unique=True).add_flags(ApiAware()),
            # authors with articles cannot be deleted
            OneToManyAssociationField("articles", "blog_article", "author_id").add_flags(
                RestrictDelete()
            ),
        ]


class BlogArticleDefinition(EntityDefinition):
    ENTITY_NAME = "blog_article"

    def define_fields(self) -> list[Field]:
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            VersionField(),
            ParentFkField("blog_article").add_flags(ApiAware()),
            ReferenceVersionField("blog_article", "parent_version_id"),
            BoolField("active", "active").add_flags(ApiAware()),
            FkField("author_id", "author_id", "blog_author").add_flags(
                ApiAware(), Inherited()
            ),
            DateTimeField("published_at", "published_at").add_flags(ApiAware()),
            TranslatedField("title").add_flags(
                ApiAware(), Inherited(), SearchRanking(HIGH_SEARCH_RANKING)
            ),
            TranslatedField("teaser").add_flags(
                ApiAware(), Inherited(), SearchRanking(MIDDLE_SEARCH_RANKING)
            ),
            TranslatedField("content").add_flags(
                ApiAware(), Inherited(), SearchRanking(LOW_SEARCH_RANKING)
            ),
            TranslationsAssociationField("blog_article_translation").add_flags(
                Required(), CascadeDelete()
            ),
            ManyToOneAssociationField("author", "author_id", "blog_author").add_flags(
                ApiAware()
            ),
            ManyToOneAssociationField("parent", "parent_id", "blog_article"),
            OneToManyAssociationField("children", "blog_article", "parent_id").add_flags(
                CascadeDelete()
            ),
            OneToManyAssociationField("comments", "blog_comment", "article_id").add_flags(
                CascadeDelete(), ApiAware()
            ),
            ManyToManyAssociationField(
                "tags", "blog_tag", "blog_article_tag", "article_id", "tag_id"
            ).add_flags(CascadeDelete(), Inherited(), ApiAware()),
            OneToOneAssociationField(
                "seo", "id", "article_id", "blog_article_seo"
            ).add_flags(CascadeDelete(), ApiAware()),
        ]

    def get_defaults(self) -> dict[str, object]:
        return {"active": True}


class BlogArticleTranslationDefinition(EntityTranslationDefinition):
    ENTITY_NAME = "blog_article_translation"
    PARENT_ENTITY = "blog_article"

    def define_fields(self) -> list[Field]:
        return [
            StringField("title", "title"),
            LongTextField("teaser", "teaser"),
            LongTextField("content", "content"),
        ]


class BlogTagDefinition(EntityDefinition):
    ENTITY_NAME = "blog_tag"

    def define_fields(self) -> list[Field]:
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            VersionField(),
            StringField("name", "name", 64).add_flags(
                Required(), ApiAware(), SearchRanking(HIGH_SEARCH_RANKING)
            ),
            ManyToManyAssociationField(
                "articles", "blog_article", "blog_article_tag", "tag_id", "article_id"
            ).add_flags(CascadeDelete(), ReverseInherited("tags")),
        ]


class BlogArticleTagDefinition(MappingEntityDefinition):
    ENTITY_NAME = "blog_article_tag"

    def define_fields(self) -> list[Field]:
        return [
            FkField("article_id", "article_id", "blog_article").add_flags(
                PrimaryKey(), Required()
            ),
            ReferenceVersionField("blog_article", "article_version_id").add_flags(
                PrimaryKey(), Required()
            ),
            FkField("tag_id", "tag_id", "blog_tag").add_flags(PrimaryKey(), Required()),
            ReferenceVersionField("blog_tag", "tag_version_id").add_flags(
                PrimaryKey(), Required()
            ),
            ManyToOneAssociationField("article", "article_id", "blog_article"),
            ManyToOneAssociationField("tag", "tag_id", "blog_tag"),
        ]


class BlogCommentDefinition(EntityDefinition):
    ENTITY_NAME = "blog_comment"

    def define_fields(self) -> list[Field]:
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            FkField("article_id", "article_id", "blog_article").add_flags(Required()),
            ReferenceVersionField("blog_article", "article_version_id").add_flags(
                Required()
            ),
            StringField("author_name", "author_name").add_flags(Required(), ApiAware()),
            LongTextField("content", "content").add_flags(
                Required(), ApiAware(), SearchRanking(LOW_SEARCH_RANKING)
            ),
            BoolField("approved", "approved").add_flags(ApiAware()),
            ManyToOneAssociationField("article", "article_id", "blog_article"),
        ]

    def get_defaults(self) -> dict[str, object]:
        return {"approved": False}


class BlogArticleSeoDefinition(EntityDefinition):
    ENTITY_NAME = "blog_article_seo"

    def define_fields(self) -> list[Field]:
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            FkField("article_id", "article_id", "blog_article", unique=True).add_flags(
                Required()
            ),
            ReferenceVersionField("blog_article", "article_version_id").add_flags(
                Required()
            ),
            StringField("meta_title", "meta_title").add_flags(ApiAware()),
            StringField("meta_description", "meta_description", 500).add_flags(ApiAware()),
            OneToOneAssociationField("article", "article_id", "id", "blog_article"),
        ]


BLOG_DEFINITIONS = [
    BlogAuthorDefinition,
    BlogArticleDefinition,
    BlogArticleTranslationDefinition,
    BlogTagDefinition,
    BlogArticleTagDefinition,
    BlogCommentDefinition,
    BlogArticleSeoDefinition,
]
