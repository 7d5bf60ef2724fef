import logging

from django.core.cache import cache

logger = logging.getLogger(__name__)

VIEW_CACHE_TIMEOUT = 300


# Read views are cached under a per-scope generation number. Invalidating a
# scope bumps its generation so every key built under the old one (lists,
# stats, any page or filter) stops being read at once.
def _generation_key(scope, scope_id):
    return f"views:{scope}:{scope_id}:generation"


def scope_generation(scope, scope_id):
    generation = cache.get(_generation_key(scope, scope_id))
    if generation is None:
        cache.add(_generation_key(scope, scope_id), 1, None)
        generation = cache.get(_generation_key(scope, scope_id), 1)
    return generation


def view_key(scope, scope_id, name):
    return f"views:{scope}:{scope_id}:{scope_generation(scope, scope_id)}:{name}"


def cached_view(scope, scope_id, name, builder, timeout=VIEW_CACHE_TIMEOUT):
    """Returns the cached value for a read view, building and storing it on a miss."""
    key = view_key(scope, scope_id, name)
    value = cache.get(key)
    if value is None:
        value = builder()
        cache.set(key, value, timeout)
    return value


def invalidate_scope(scope, scope_id):
    key = _generation_key(scope, scope_id)
    try:
        cache.incr(key)
    except ValueError:
        # No generation yet means nothing has been cached under this scope
        cache.add(key, 1, None)
    logger.info("Invalidated cached views for %s %s", scope, scope_id)


def invalidate_project_views(project_id, sub_project_id=None):
    invalidate_scope('project', project_id)
    if sub_project_id:
        invalidate_scope('sub_project', sub_project_id)
