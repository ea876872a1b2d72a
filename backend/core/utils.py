"""Audit trail helpers shared by the campaign, order and Q&A views"""
import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """First hop of X-Forwarded-For, falling back to REMOTE_ADDR"""
    meta = getattr(request, 'META', None)
    if not meta:
        return None
    forwarded = meta.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip() or None
    return meta.get('REMOTE_ADDR') or None


def _as_text(value):
    return None if value is None else str(value)


def snapshot(instance, fields):
    """Capture the current values of ``fields`` before an update"""
    return {field: getattr(instance, field) for field in fields}


def diff_snapshot(before, instance):
    """
    Compare a snapshot against the saved instance.

    Returns ``{field: {'old': ..., 'new': ...}}`` for every field whose value
    changed, with values rendered as text so Decimals and datetimes fit the
    JSON ``changes`` column.
    """
    changes = {}
    for field, old_value in before.items():
        new_value = getattr(instance, field)
        if new_value != old_value:
            changes[field] = {'old': _as_text(old_value), 'new': _as_text(new_value)}
    return changes


def _display_name(instance):
    for attr in ('name', 'customer_name'):
        value = getattr(instance, attr, None)
        if value:
            return str(value)[:255]
    return None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Record an audit entry.

    ``user`` overrides ``request.user``; anonymous users are stored as NULL.
    ``object_reference`` holds the campaign slug so every entry of a campaign
    can be found even after the object itself is deleted. Failures are logged
    and never propagate to the calling view.
    """
    if not action or not model_name or object_id in (None, ''):
        logger.warning(f"Audit log skipped: missing fields (action={action}, model={model_name}, id={object_id})")
        return None

    audit_user = user or getattr(request, 'user', None)
    if audit_user is not None and not audit_user.is_authenticated:
        audit_user = None

    try:
        return AuditLog.objects.create(
            user=audit_user,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            object_reference=object_reference,
            changes=changes or {},
            ip_address=get_client_ip(request),
        )
    except Exception as e:
        logger.error(f"Failed to create audit log for {model_name} {object_id}: {str(e)}")
        return None


def audit_instance(request, action, instance, campaign_slug, changes=None, object_id=None):
    """
    Audit an action on a model instance scoped to a campaign.

    Pass ``object_id`` when the instance has already been deleted and its
    primary key cleared.
    """
    return create_audit_log(
        request=request,
        action=action,
        model_name=instance.__class__.__name__,
        object_id=object_id if object_id is not None else instance.pk,
        object_name=_display_name(instance),
        object_reference=campaign_slug,
        changes=changes,
    )
