"""Notification fan-out.

send_notification persists a record for the recipient and pushes it as
new_notification when the recipient has a live connection; otherwise the
payload goes to the offline queue and is replayed on the next connect.
The producer helpers below are what the job, application and profile
subsystems call.
"""
import logging
from typing import Optional, Dict, Any, List, Tuple

from docconnect_server.exception import NotFoundError, ValidationFailedError
from docconnect_server.messaging.models import Notification, NotificationPriority
from docconnect_server.repository.media import NotificationRepository
from docconnect_server.repository.mongo_helper import MongoRepositorySingleton
from docconnect_server.utils.helpers import to_object_id, build_pagination

logger = logging.getLogger(__name__)

NEW_NOTIFICATION = 'new_notification'

APPLICATION_STATUS_MESSAGES = {
    'under_review': 'Your application for "{title}" is now under review',
    'shortlisted': 'Great news! You\'ve been shortlisted for "{title}"',
    'interview_scheduled': 'Interview scheduled for "{title}"! Check your appointments',
    'accepted': 'Congratulations! Your application for "{title}" has been accepted!',
    'rejected': 'Your application for "{title}" was not selected',
    'completed': 'Your work on "{title}" has been marked as completed',
}
HIGH_PRIORITY_STATUSES = ('accepted', 'interview_scheduled', 'shortlisted')


def _full_name(user: Dict[str, Any]) -> str:
    first = user.get('firstName') or user.get('first_name') or ''
    last = user.get('lastName') or user.get('last_name') or ''
    return f"{first} {last}".strip()


class NotificationService:

    def __init__(self, db, presence=None, offline_queue=None, emitter=None):
        self.repo = NotificationRepository(db)
        self.presence = presence
        self.offline_queue = offline_queue
        self.emitter = emitter

    def attach(self, presence, offline_queue, emitter) -> None:
        """Bind the realtime side once the gateway is up."""
        self.presence = presence
        self.offline_queue = offline_queue
        self.emitter = emitter

    def send_notification(self, user_key: str, notification_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a notification, then push it or queue it for later."""
        if not user_key:
            raise ValidationFailedError('Notification recipient is required')
        if not data.get('title') or not data.get('message'):
            raise ValidationFailedError('Notification title and message are required')
        notification = Notification(
            recipient=user_key,
            notification_type=notification_type,
            title=data['title'],
            message=data['message'],
            data=data.get('data'),
            action_url=data.get('actionUrl'),
            priority=data.get('priority', NotificationPriority.MEDIUM.value)
        )
        self.repo.create(notification.to_db_doc())
        payload = notification.to_dict()
        self.deliver(user_key, NEW_NOTIFICATION, payload)
        return payload

    def deliver(self, user_key: str, event: str, payload: Any) -> bool:
        """Emit to the user's personal room if online, else queue. Returns True if emitted."""
        if self._is_online(user_key):
            self.emitter.emit_to_user(user_key, event, payload)
            return True
        if self.offline_queue is None:
            return False
        self.offline_queue.enqueue(user_key, event, payload)
        # The user may have connected, and drained, between the check and the enqueue
        if self._is_online(user_key):
            for entry in self.offline_queue.drain(user_key):
                self.emitter.emit_to_user(user_key, entry['event'], entry['data'])
            return True
        return False

    def _is_online(self, user_key: str) -> bool:
        return self.presence is not None and self.emitter is not None and self.presence.is_online(user_key)

    def send_bulk_notifications(self, user_keys: List[str], notification_type: str,
                                data: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [self.send_notification(user_key, notification_type, data) for user_key in user_keys]

    # =========================================================================
    # Producers
    # =========================================================================

    def notify_new_message(self, user_key: str, sender: Dict[str, Any], preview: str,
                           conversation_id: str, message_id: Optional[str] = None) -> Dict[str, Any]:
        return self.send_notification(user_key, 'new_message', {
            'title': 'New Message',
            'message': f"Dr. {_full_name(sender)}: {preview}",
            'data': {
                'senderId': sender.get('userKey') or sender.get('user_key'),
                'conversationId': conversation_id,
                'messageId': message_id,
            },
            'actionUrl': f"/messages?conversation={conversation_id}",
            'priority': NotificationPriority.HIGH.value,
        })

    def notify_new_message_safely(self, *args, **kwargs) -> Optional[Dict[str, Any]]:
        """notify_new_message that never fails the message send."""
        try:
            return self.notify_new_message(*args, **kwargs)
        except Exception:
            logger.warning("Failed to create new message notification", exc_info=True)
            return None

    def notify_job_application(self, senior_key: str, application: Dict[str, Any],
                               job: Dict[str, Any], applicant: Dict[str, Any]) -> Dict[str, Any]:
        return self.send_notification(senior_key, 'job_application', {
            'title': 'New Job Application',
            'message': f"Dr. {_full_name(applicant)} applied for \"{job.get('title')}\"",
            'data': {
                'applicationId': application.get('id'),
                'jobId': job.get('id'),
                'applicantId': applicant.get('userKey') or applicant.get('user_key'),
            },
            'actionUrl': f"/applications/{application.get('id')}",
            'priority': NotificationPriority.HIGH.value,
        })

    def notify_application_status(self, applicant_key: str, application: Dict[str, Any],
                                  status: str, job: Dict[str, Any]) -> Dict[str, Any]:
        title = job.get('title') or 'a job'
        template = APPLICATION_STATUS_MESSAGES.get(status)
        message = template.format(title=title) if template else f"Application status updated to {status}"
        priority = NotificationPriority.HIGH if status in HIGH_PRIORITY_STATUSES else NotificationPriority.MEDIUM
        return self.send_notification(applicant_key, 'application_status', {
            'title': 'Application Status Update',
            'message': message,
            'data': {'applicationId': application.get('id'), 'jobId': job.get('id'), 'status': status},
            'actionUrl': '/applications/tracking',
            'priority': priority.value,
        })

    def notify_profile_view(self, user_key: str, viewer: Dict[str, Any]) -> Dict[str, Any]:
        viewer_key = viewer.get('userKey') or viewer.get('user_key')
        return self.send_notification(user_key, 'profile_view', {
            'title': 'Profile View',
            'message': f"Dr. {_full_name(viewer)} viewed your profile",
            'data': {'viewerId': viewer_key},
            'actionUrl': f"/profile/{viewer_key}",
            'priority': NotificationPriority.LOW.value,
        })

    # =========================================================================
    # Recipient operations
    # =========================================================================

    def list_notifications(self, user_key: str, page: int = 1, limit: int = 20,
                           read: Optional[bool] = None) -> Tuple[List[Dict], Dict]:
        skip = (page - 1) * limit
        docs = self.repo.list_for_user(user_key, read=read, skip=skip, limit=limit)
        total = self.repo.count_for_user(user_key, read=read)
        return [Notification.from_doc(d).to_dict() for d in docs], build_pagination(page, limit, total)

    def unread_count(self, user_key: str) -> int:
        return self.repo.count_for_user(user_key, read=False)

    def mark_read(self, notification_id, user_key: str) -> Dict[str, Any]:
        doc = self.repo.mark_read(to_object_id(notification_id, 'Notification'), user_key)
        if not doc:
            raise NotFoundError('Notification not found')
        return Notification.from_doc(doc).to_dict()

    def mark_all_read(self, user_key: str) -> int:
        return self.repo.mark_all_read(user_key)

    def delete(self, notification_id, user_key: str) -> None:
        if not self.repo.delete(to_object_id(notification_id, 'Notification'), user_key):
            raise NotFoundError('Notification not found')


_notification_service = None


def get_notification_service() -> NotificationService:
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService(MongoRepositorySingleton.get_db())
    return _notification_service


def reset_notification_service(service: Optional[NotificationService] = None) -> None:
    global _notification_service
    _notification_service = service
