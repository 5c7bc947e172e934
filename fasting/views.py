import json
import logging

from django.http import HttpResponse, JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .controller import State
from .exceptions import AlreadyActive, DuplicateOpenSession, FastingError, NotFound
from .notifications import pending_notifications
from .records import parse_instant
from .services.csv_export import write_sessions_csv
from .utils import get_controller, health_sync_enabled, set_health_sync

logger = logging.getLogger(__name__)


def _parse_body(request):
    if not request.body:
        return {}
    data = json.loads(request.body)
    if not isinstance(data, dict):
        raise ValueError('Expected a JSON object')
    return data


def _parse_instant(value, field):
    """ISO-8601 string to an aware datetime. Naive values are read in the server timezone."""
    if value in (None, ''):
        return None
    try:
        return parse_instant(value)
    except ValueError:
        raise ValueError(f'Invalid {field} timestamp: {value}')


def _parse_hours(value, field='goal_hours'):
    if value in (None, ''):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f'Invalid {field}: {value}')


def _error(message, status=400):
    return JsonResponse({'success': False, 'error': message}, status=status)


def _domain_error(e):
    if isinstance(e, (AlreadyActive, DuplicateOpenSession)):
        status = 409
    elif isinstance(e, NotFound):
        status = 404
    else:
        status = 400
    logger.info('Rejected fasting request (%s): %s', type(e).__name__, e.message)
    return _error(e.message, status=status)


def _ok(controller, **payload):
    payload['success'] = True
    if controller.storage_warning:
        payload['warning'] = controller.storage_warning
    return JsonResponse(payload)


def _streaks_payload(controller):
    streaks = controller.streaks()
    return {'current': streaks.current, 'longest': streaks.longest}


def serialize_state(controller, now=None):
    now = now or controller.clock()
    state, record = controller.current_state()
    stage = controller.current_stage(now)
    return {
        'state': state.value,
        'session': record.to_dict() if record else None,
        'elapsed_seconds': int(controller.elapsed(now).total_seconds()),
        'progress': round(controller.progress(now), 4),
        'remaining_seconds': int(controller.remaining(now).total_seconds()),
        'stage': {'title': stage.title, 'hours': stage.hour_range} if stage else None,
        'goal_hours': controller.goal_hours_for_current(),
        'default_goal_hours': controller.default_goal_hours,
        'streaks': _streaks_payload(controller),
    }


@require_GET
def fast_state(request):
    """Current fast, live progress, streaks and any goal reminders that are due."""
    controller = get_controller(request)
    now = controller.clock()
    due = [
        {'session_id': n.session_id, 'kind': n.kind, 'fire_at': n.fire_at.isoformat()}
        for n in pending_notifications(now)
    ]
    return _ok(controller, due_reminders=due, **serialize_state(controller, now))


@require_POST
def start_fast(request):
    """
    AJAX endpoint to start a fast.

    Optional JSON body:
        - at: ISO timestamp (defaults to now)
        - goal_hours: goal for this fast (defaults to the global goal)
    """
    try:
        data = _parse_body(request)
        at = _parse_instant(data.get('at'), 'at')
        goal_hours = _parse_hours(data.get('goal_hours'))
        controller = get_controller(request)
        controller.start(at=at, goal_hours=goal_hours)
    except FastingError as e:
        return _domain_error(e)
    except (json.JSONDecodeError, ValueError) as e:
        return _error(str(e))
    return _ok(controller, **serialize_state(controller))


@require_POST
def stop_fast(request):
    """AJAX endpoint to stop the running fast (optional ISO `at`)."""
    try:
        data = _parse_body(request)
        at = _parse_instant(data.get('at'), 'at')
        controller = get_controller(request)
        record = controller.stop(at=at)
    except FastingError as e:
        return _domain_error(e)
    except (json.JSONDecodeError, ValueError) as e:
        return _error(str(e))
    return _ok(
        controller,
        session=record.to_dict(),
        met_goal=record.met_goal(controller.default_goal_hours),
        streaks=_streaks_payload(controller),
    )


@require_POST
def edit_active_start(request):
    """AJAX endpoint to move the start time of the running fast."""
    try:
        data = _parse_body(request)
        new_start = _parse_instant(data.get('start'), 'start')
        if new_start is None:
            return _error('Start time is required')
        controller = get_controller(request)
        controller.edit_active_start(new_start)
    except FastingError as e:
        return _domain_error(e)
    except (json.JSONDecodeError, ValueError) as e:
        return _error(str(e))
    return _ok(controller, **serialize_state(controller))


@require_POST
def log_fast(request):
    """
    AJAX endpoint to backfill a completed fast.

    Expects JSON:
        - start, end: ISO timestamps
        - goal_hours: optional goal for this fast
    """
    try:
        data = _parse_body(request)
        start = _parse_instant(data.get('start'), 'start')
        end = _parse_instant(data.get('end'), 'end')
        if start is None or end is None:
            return _error('Start and end times are required')
        goal_hours = _parse_hours(data.get('goal_hours'))
        controller = get_controller(request)
        record = controller.log_completed(start, end, goal_hours=goal_hours)
    except FastingError as e:
        return _domain_error(e)
    except (json.JSONDecodeError, ValueError) as e:
        return _error(str(e))
    return _ok(controller, session=record.to_dict(), streaks=_streaks_payload(controller))


@require_http_methods(["PATCH"])
def edit_fast(request, session_id):
    """AJAX endpoint to change both times of a completed fast."""
    try:
        data = _parse_body(request)
        start = _parse_instant(data.get('start'), 'start')
        end = _parse_instant(data.get('end'), 'end')
        if start is None or end is None:
            return _error('Start and end times are required')
        controller = get_controller(request)
        record = controller.edit_completed(session_id, start, end)
    except FastingError as e:
        return _domain_error(e)
    except (json.JSONDecodeError, ValueError) as e:
        return _error(str(e))
    return _ok(controller, session=record.to_dict(), streaks=_streaks_payload(controller))


@require_http_methods(["DELETE", "POST"])
def delete_fast(request, session_id):
    """AJAX endpoint to delete a fast (the running one included)."""
    controller = get_controller(request)
    try:
        record = controller.delete(session_id)
    except FastingError as e:
        return _domain_error(e)
    state, _ = controller.current_state()
    return _ok(
        controller,
        deleted=record.id,
        state=state.value,
        streaks=_streaks_payload(controller),
    )


@require_GET
def fast_history(request):
    """
    Fasts newest first.

    Query parameters:
        - goal_met: '1' to list only fasts that reached their goal
        - from, to: ISO bounds on the start time
    """
    try:
        earliest = _parse_instant(request.GET.get('from'), 'from')
        latest = _parse_instant(request.GET.get('to'), 'to')
    except ValueError as e:
        return _error(str(e))
    goal_met_only = request.GET.get('goal_met') in ('1', 'true', 'True')
    date_range = (earliest, latest) if earliest or latest else None

    controller = get_controller(request)
    records = controller.history(goal_met_only=goal_met_only, date_range=date_range)
    return _ok(
        controller,
        count=len(records),
        sessions=[
            dict(r.to_dict(), met_goal=r.met_goal(controller.default_goal_hours))
            for r in records
        ],
    )


@require_POST
def set_goal(request):
    """AJAX endpoint to change the default fasting goal."""
    try:
        data = _parse_body(request)
        hours = _parse_hours(data.get('hours'), 'hours')
        if hours is None:
            return _error('Goal hours are required')
        controller = get_controller(request)
        controller.set_goal(hours)
    except FastingError as e:
        return _domain_error(e)
    except (json.JSONDecodeError, ValueError) as e:
        return _error(str(e))
    return _ok(controller, goal_hours=controller.default_goal_hours, streaks=_streaks_payload(controller))


@require_GET
def fast_streaks(request):
    """Current and longest streak, the last week's goal-met days and lifetime totals."""
    controller = get_controller(request)
    try:
        days = min(max(int(request.GET.get('days', 7)), 1), 366)
    except ValueError:
        return _error('days must be a number')
    streaks = controller.refresh_streaks()
    return _ok(
        controller,
        current=streaks.current,
        longest=streaks.longest,
        days=[{'date': day.isoformat(), 'met_goal': met} for day, met in controller.daily_status(days)],
        summary=controller.summary(),
        active=controller.current_state()[0] is State.ACTIVE,
    )


@require_http_methods(["GET", "POST"])
def health_sync(request):
    """
    Read or change whether stopped fasts are pushed to the health store.

    POST JSON:
        - enabled: true/false
    """
    if request.method == 'POST':
        try:
            data = _parse_body(request)
        except (json.JSONDecodeError, ValueError) as e:
            return _error(str(e))
        enabled = data.get('enabled')
        if not isinstance(enabled, bool):
            return _error('enabled must be true or false')
        set_health_sync(enabled)
        logger.info('Health sync turned %s', 'on' if enabled else 'off')
    return JsonResponse({'success': True, 'enabled': health_sync_enabled()})


@require_GET
def export_csv(request):
    """Download the fasting history as CSV."""
    controller = get_controller(request)
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename=fasting_history_{controller.clock():%Y%m%d}.csv'
    write_sessions_csv(controller.history(), response, controller.default_goal_hours, controller.tz)
    return response
