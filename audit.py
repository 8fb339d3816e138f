import logging
from concurrent.futures import ThreadPoolExecutor

from flask import current_app

from database import db, AdminLog, now_utc

logger = logging.getLogger(__name__)


class AuditTrail:
    def __init__(self, app=None):
        self.async_mode = False
        self.executor = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.async_mode = bool(app.config.get("AUDIT_ASYNC"))
        if self.async_mode:
            self.executor = ThreadPoolExecutor(
                max_workers=int(app.config.get("AUDIT_WORKERS", 2)),
                thread_name_prefix="audit"
            )
        app.extensions["audit_trail"] = self

    def record(self, admin_email, action, target_id=None):
        if self.executor is not None:
            app = current_app._get_current_object()
            return self.executor.submit(self._record_in_context, app, admin_email, action, target_id)
        self._record(admin_email, action, target_id)
        return None

    def _record_in_context(self, app, admin_email, action, target_id):
        with app.app_context():
            self._record(admin_email, action, target_id)

    def _record(self, admin_email, action, target_id):
        try:
            self._write(admin_email, action, target_id)
        except Exception:
            db.session.rollback()
            logger.exception("Error logging admin action %r by %s (target %s)", action, admin_email, target_id)

    def _write(self, admin_email, action, target_id):
        db.session.add(AdminLog(
            admin_email=admin_email,
            action=action,
            target_user_id=target_id,
            timestamp=now_utc()
        ))
        db.session.commit()

    def shutdown(self, wait=True):
        if self.executor is not None:
            self.executor.shutdown(wait=wait)


def log_admin_action(admin_email, action, target_id=None):
    return current_app.extensions["audit_trail"].record(admin_email, action, target_id)


def recent_entries(limit=50):
    return (
        AdminLog.query
        .order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
        .limit(limit)
        .all()
    )
