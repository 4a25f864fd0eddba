"""
Complaint lifecycle: filing, editing, triage, upvotes and reporter feedback.

Every mutating operation checks its domain rules before writing, applies the
change inside ``transaction.atomic`` and queues its notifications on a
``NotificationBatch`` that is only dispatched after commit.
"""

import logging
from datetime import timedelta
from typing import Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.db.models.functions import TruncDate
from django.utils import timezone

from apps.communication.models import Notification
from apps.communication.services import NotificationBatch
from apps.core.exceptions import Conflict, Forbidden, InvalidInput, InvalidState
from .models import Complaint, ComplaintUpvote

logger = logging.getLogger(__name__)
User = get_user_model()

EDITABLE_FIELDS = ('title', 'description', 'category', 'tags', 'images', 'is_anonymous')


def _complaint_link(complaint):
    return f'/complaints/{complaint.pk}'


class ComplaintService:
    """
    Service class for complaint lifecycle operations.
    """

    @staticmethod
    def create(
        reporter: User,
        title: str,
        description: str,
        category: str,
        hostel_block: Optional[str] = None,
        room_number: Optional[str] = None,
        is_anonymous: bool = False,
        tags: Optional[list] = None,
        images: Optional[list] = None,
    ) -> Complaint:
        """
        File a new complaint and alert every active warden and admin.

        Args:
            reporter: User filing the complaint
            title: 5-100 characters
            description: 10-1000 characters
            category: One of Complaint.Category
            hostel_block: Defaults to the reporter's block
            room_number: Defaults to the reporter's room
            is_anonymous: Hide the reporter from other residents
            tags: Free-text labels
            images: Image URLs

        Returns:
            The created Complaint

        Raises:
            Conflict: the same reporter filed an identical complaint within the duplicate window
            InvalidInput: no hostel block or room could be resolved
        """
        hostel_block = hostel_block or reporter.hostel_block
        room_number = room_number or reporter.room_number
        if not hostel_block:
            raise InvalidInput('hostel_block', 'Hostel block is required when your profile has none.')
        if not room_number:
            raise InvalidInput('room_number', 'Room number is required when your profile has none.')

        window = timedelta(hours=getattr(settings, 'DUPLICATE_COMPLAINT_WINDOW_HOURS', 12))
        duplicate = Complaint.objects.filter(
            reported_by=reporter,
            title__iexact=title,
            description__iexact=description,
            created_at__gte=timezone.now() - window,
        ).exists()
        if duplicate:
            raise Conflict(
                'You already filed this complaint recently. Please wait before submitting it again.',
                code='duplicate_complaint'
            )

        complaint = Complaint(
            reported_by=reporter,
            title=title,
            description=description,
            category=category,
            hostel_block=hostel_block,
            room_number=room_number,
            is_anonymous=is_anonymous,
            tags=tags or [],
            images=images or [],
            status=Complaint.Status.PENDING,
        )
        complaint.refresh_priority()
        complaint.full_clean()

        batch = NotificationBatch()
        with transaction.atomic():
            complaint.save()
            for staff in User.objects.staff_members().exclude(pk=reporter.pk):
                batch.add(
                    staff,
                    'New Complaint Filed',
                    f'A new complaint "{complaint.title}" has been filed in {complaint.hostel_block} Block.',
                    notification_type=Notification.Type.COMPLAINT,
                    category=Notification.Category.NEW,
                    priority=(Notification.Priority.HIGH if complaint.priority == Complaint.Priority.URGENT
                              else Notification.Priority.MEDIUM),
                    sender=None if complaint.is_anonymous else reporter,
                    related_entity=complaint,
                    related_entity_type=Notification.EntityType.COMPLAINT,
                    action_url=_complaint_link(complaint),
                    action_text='View Complaint',
                )
            batch.dispatch_on_commit()

        logger.info(f"Complaint {complaint.pk} filed by {reporter.email} ({complaint.category}, {complaint.priority})")
        return complaint

    @staticmethod
    def update(actor: User, complaint: Complaint, **fields) -> Complaint:
        """
        Edit a complaint. Only the reporter may edit, and only while it is pending.

        Raises:
            Forbidden: actor is not the reporter
            InvalidState: complaint is no longer pending
        """
        if complaint.reported_by_id != actor.pk:
            raise Forbidden('Only the reporter can edit this complaint.')

        with transaction.atomic():
            complaint = Complaint.objects.select_for_update().get(pk=complaint.pk)
            if complaint.status != Complaint.Status.PENDING:
                if complaint.status == Complaint.Status.RESOLVED:
                    raise InvalidState('Resolved complaints cannot be edited.')
                raise InvalidState('Complaints can only be edited while pending.')

            for field, value in fields.items():
                if field not in EDITABLE_FIELDS:
                    raise InvalidInput(field, 'This field cannot be edited.')
                setattr(complaint, field, value)

            complaint.refresh_priority()
            complaint.full_clean()
            complaint.save()

        logger.info(f"Complaint {complaint.pk} edited by reporter")
        return complaint

    @staticmethod
    def set_status(
        actor: User,
        complaint: Complaint,
        status: str,
        assigned_to: Optional[User] = None,
        resolution_notes: Optional[str] = None,
        estimated_resolution_time=None,
    ) -> Complaint:
        """
        Move a complaint through its lifecycle (wardens and admins only).

        Args:
            actor: Warden or admin making the change
            complaint: Complaint to update
            status: Target status; must be allowed from the current one
            assigned_to: Warden or admin to take the complaint (optional)
            resolution_notes: Notes for the reporter (optional)
            estimated_resolution_time: Expected fix time (optional)

        Returns:
            The updated Complaint

        Raises:
            Forbidden: actor is not staff, or is a warden of another block
            InvalidInput: unknown status or an assignee who is not staff
            InvalidState: the transition table does not allow the move
        """
        if not actor.is_staff_member:
            raise Forbidden('Only wardens and admins can update complaint status.')
        if not actor.can_manage_block(complaint.hostel_block):
            raise Forbidden('Wardens can only manage complaints in their own block.')
        if status not in Complaint.Status.values:
            raise InvalidInput('status', f'"{status}" is not a valid complaint status.')
        if assigned_to is not None and not (assigned_to.is_active and assigned_to.is_staff_member):
            raise InvalidInput('assigned_to', 'Complaints can only be assigned to active wardens or admins.')

        batch = NotificationBatch()
        with transaction.atomic():
            complaint = Complaint.objects.select_for_update().get(pk=complaint.pk)
            if not complaint.can_transition_to(status):
                raise InvalidState(
                    f'Cannot move a complaint from {complaint.status} to {status}.'
                )

            if status == Complaint.Status.RESOLVED and complaint.status != status:
                complaint.actual_resolution_time = timezone.now()
            complaint.status = status
            if assigned_to is not None:
                complaint.assigned_to = assigned_to
            if resolution_notes is not None:
                complaint.resolution_notes = resolution_notes
            if estimated_resolution_time is not None:
                complaint.estimated_resolution_time = estimated_resolution_time

            complaint.refresh_priority()
            complaint.full_clean()
            complaint.save()

            if complaint.reported_by_id != actor.pk:
                awaiting = status == Complaint.Status.AWAITING_APPROVAL
                batch.add(
                    complaint.reported_by,
                    'Complaint Status Updated',
                    f'Your complaint "{complaint.title}" status has been updated to {status}.',
                    notification_type=Notification.Type.COMPLAINT,
                    category=(Notification.Category.RESOLVED if status == Complaint.Status.RESOLVED
                              else Notification.Category.UPDATE),
                    sender=actor,
                    related_entity=complaint,
                    related_entity_type=Notification.EntityType.COMPLAINT,
                    action_url=_complaint_link(complaint),
                    action_text='Confirm Resolution' if awaiting else 'View Details',
                )
            if assigned_to is not None and assigned_to.pk != actor.pk:
                batch.add(
                    assigned_to,
                    'New Complaint Assigned',
                    f'You have been assigned to resolve complaint: "{complaint.title}"',
                    notification_type=Notification.Type.COMPLAINT,
                    category=Notification.Category.UPDATE,
                    priority=(Notification.Priority.HIGH if complaint.priority == Complaint.Priority.URGENT
                              else Notification.Priority.MEDIUM),
                    sender=actor,
                    related_entity=complaint,
                    related_entity_type=Notification.EntityType.COMPLAINT,
                    action_url=_complaint_link(complaint),
                    action_text='View Complaint',
                )
            batch.dispatch_on_commit()

        logger.info(f"Complaint {complaint.pk} moved to {status} by {actor.email}")
        return complaint

    @staticmethod
    def upvote(actor: User, complaint: Complaint) -> int:
        """
        Upvote a complaint once.

        Returns:
            The new upvote count

        Raises:
            Forbidden: actor reported the complaint
            Conflict: actor already upvoted (code ``already_upvoted``)
        """
        if complaint.reported_by_id == actor.pk:
            raise Forbidden('You cannot upvote your own complaint.')
        if ComplaintUpvote.objects.filter(complaint=complaint, user=actor).exists():
            raise Conflict('You have already upvoted this complaint.', code='already_upvoted')

        try:
            with transaction.atomic():
                ComplaintUpvote.objects.create(complaint=complaint, user=actor)
        except IntegrityError:
            # Lost a race against a concurrent upvote by the same user
            raise Conflict('You have already upvoted this complaint.', code='already_upvoted')

        return complaint.upvotes.count()

    @staticmethod
    def remove_upvote(actor: User, complaint: Complaint) -> int:
        """
        Withdraw an upvote.

        Returns:
            The new upvote count

        Raises:
            Conflict: actor had not upvoted (code ``not_upvoted``)
        """
        deleted, _ = ComplaintUpvote.objects.filter(complaint=complaint, user=actor).delete()
        if not deleted:
            raise Conflict('You have not upvoted this complaint.', code='not_upvoted')
        return complaint.upvotes.count()

    @staticmethod
    def add_feedback(
        actor: User,
        complaint: Complaint,
        rating: Optional[int] = None,
        comment: str = '',
        resolved: Optional[bool] = None,
    ) -> Complaint:
        """
        Record the reporter's verdict on a complaint.

        On a resolved complaint this stores a one-time 1-5 rating and comment.
        On a complaint awaiting approval it is a one-shot confirmation: confirming
        resolves the complaint, denying sends it back to in-progress, and the
        assignee (or the block's wardens when unassigned) hear the outcome.

        Raises:
            Forbidden: actor is not the reporter
            InvalidState: complaint is neither resolved nor awaiting approval
            Conflict: feedback was already given
            InvalidInput: rating or confirmation missing
        """
        if complaint.reported_by_id != actor.pk:
            raise Forbidden('Only the complaint reporter can add feedback.')

        batch = NotificationBatch()
        with transaction.atomic():
            complaint = Complaint.objects.select_for_update().get(pk=complaint.pk)

            if complaint.status == Complaint.Status.RESOLVED:
                if complaint.has_feedback:
                    raise Conflict('Feedback has already been submitted for this complaint.', code='feedback_exists')
                if rating is None:
                    raise InvalidInput('rating', 'A rating between 1 and 5 is required.')
                complaint.feedback_rating = rating
                complaint.feedback_comment = comment or ''

            elif complaint.status == Complaint.Status.AWAITING_APPROVAL:
                if complaint.feedback_resolved is not None:
                    raise Conflict('This complaint has already been confirmed or disputed.', code='feedback_exists')
                if resolved is None:
                    raise InvalidInput('resolved', 'Confirm whether the issue is resolved.')

                complaint.feedback_resolved = resolved
                if rating is not None:
                    complaint.feedback_rating = rating
                complaint.feedback_comment = comment or ''
                if resolved:
                    complaint.status = Complaint.Status.RESOLVED
                    complaint.actual_resolution_time = timezone.now()
                else:
                    complaint.status = Complaint.Status.IN_PROGRESS

                if complaint.assigned_to_id:
                    recipients = [complaint.assigned_to]
                else:
                    recipients = User.objects.wardens_for_block(complaint.hostel_block)
                title = 'Resolution Confirmed' if resolved else 'Resolution Disputed'
                verdict = 'confirmed the fix for' if resolved else 'reports the issue persists for'
                for recipient in recipients:
                    batch.add(
                        recipient,
                        title,
                        f'The reporter {verdict} complaint "{complaint.title}".',
                        notification_type=Notification.Type.COMPLAINT,
                        category=Notification.Category.RESOLVED if resolved else Notification.Category.UPDATE,
                        priority=Notification.Priority.MEDIUM if resolved else Notification.Priority.HIGH,
                        related_entity=complaint,
                        related_entity_type=Notification.EntityType.COMPLAINT,
                        action_url=_complaint_link(complaint),
                        action_text='View Complaint',
                    )

            else:
                raise InvalidState('Feedback can only be added to resolved complaints or those awaiting approval.')

            complaint.feedback_at = timezone.now()
            complaint.refresh_priority()
            complaint.full_clean()
            complaint.save()
            batch.dispatch_on_commit()

        logger.info(f"Feedback recorded on complaint {complaint.pk} (status {complaint.status})")
        return complaint

    @staticmethod
    def visible_complaints(user: User):
        """
        Complaints the user may see, with stale priorities refreshed first.
        """
        queryset = Complaint.objects.visible_to(user)
        queryset.sync_priorities()
        return queryset

    @staticmethod
    def stats(actor: User, hostel_block: Optional[str] = None, time_range_days: int = 30) -> Dict:
        """
        Complaint statistics for staff dashboards.

        Args:
            actor: Warden or admin; wardens always see their own block
            hostel_block: Restrict to one block (admins only)
            time_range_days: Only count complaints filed in this many past days

        Returns:
            Dictionary with overview counts, category breakdown and resolution trend
        """
        if not actor.is_staff_member:
            raise Forbidden('Only wardens and admins can view complaint statistics.')
        if actor.is_warden:
            hostel_block = actor.hostel_block

        queryset = Complaint.objects.filter(created_at__gte=timezone.now() - timedelta(days=time_range_days))
        if hostel_block:
            queryset = queryset.filter(hostel_block=hostel_block)
        queryset.sync_priorities()

        overview = queryset.aggregate(
            total=Count('id'),
            pending=Count('id', filter=Q(status=Complaint.Status.PENDING)),
            in_progress=Count('id', filter=Q(status=Complaint.Status.IN_PROGRESS)),
            awaiting_approval=Count('id', filter=Q(status=Complaint.Status.AWAITING_APPROVAL)),
            resolved=Count('id', filter=Q(status=Complaint.Status.RESOLVED)),
            rejected=Count('id', filter=Q(status=Complaint.Status.REJECTED)),
            urgent=Count('id', filter=Q(priority=Complaint.Priority.URGENT)),
        )
        overview['resolution_rate'] = (
            round(overview['resolved'] / overview['total'] * 100, 1) if overview['total'] else 0
        )

        category_breakdown = list(
            queryset.values('category').annotate(count=Count('id')).order_by('-count', 'category')
        )
        trend = list(
            queryset.filter(status=Complaint.Status.RESOLVED, actual_resolution_time__isnull=False)
            .annotate(date=TruncDate('actual_resolution_time'))
            .values('date')
            .annotate(count=Count('id'))
            .order_by('-date')[:7]
        )
        trend.reverse()

        return {
            'overview': overview,
            'category_breakdown': category_breakdown,
            'resolution_trend': trend,
        }
