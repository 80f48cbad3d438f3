"""Content type UID helpers for the Strapi REST stores."""


def extract_model_name(uid: str) -> str:
    """Model name of a UID.

    Example:
        >>> extract_model_name("api::blog.post")
        'post'
        >>> extract_model_name("plugin::upload.file")
        'file'
    """
    _, _, api_model = uid.partition("::")
    if not api_model:
        return uid
    return api_model.rsplit(".", 1)[-1]


def pluralize(name: str) -> str:
    """Plural of a model name using regular English rules only.

    Use the schema's ``pluralName`` when a collection pluralizes irregularly.
    """
    if name.endswith("y") and not name.endswith(("ay", "ey", "oy", "uy")):
        return name[:-1] + "ies"
    if name.endswith(("s", "x", "z", "ch", "sh")):
        return name + "es"
    return name + "s"


def uid_to_endpoint(uid: str, plural_name: str | None = None) -> str:
    """REST endpoint of a collection.

    Args:
        uid: Collection UID (``api::article.article``) or a bare endpoint
        plural_name: ``pluralName`` from the schema, used as-is when given

    Example:
        >>> uid_to_endpoint("api::category.category")
        'categories'
        >>> uid_to_endpoint("api::person.person", plural_name="people")
        'people'
        >>> uid_to_endpoint("articles")
        'articles'
    """
    if plural_name:
        return plural_name
    if "::" not in uid:
        return uid
    return pluralize(extract_model_name(uid))
