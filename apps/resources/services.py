"""
Resource sharing: listings, the borrow lifecycle and resource-request fulfillment.

The resource row is the unit of atomicity. Every lifecycle change locks it with
``select_for_update`` inside ``transaction.atomic`` before touching its borrow
requests or records, and the state-changing writes are conditional updates so
that of two racing approvals only one can succeed.
"""

import logging
from datetime import timedelta
from typing import Dict, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from apps.communication.models import Notification
from apps.communication.services import NotificationBatch
from apps.core.exceptions import Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from .models import BorrowRecord, BorrowRequest, Resource, ResourceRequest, WishlistEntry

logger = logging.getLogger(__name__)
User = get_user_model()

Availability = Resource.Availability

EDITABLE_FIELDS = (
    'name', 'description', 'category', 'condition', 'availability', 'hostel_block',
    'room_number', 'max_borrow_duration', 'deposit_required', 'deposit_amount',
    'borrowing_rules', 'tags', 'images', 'is_public',
)

# Availability values an owner may set directly; other states have their own workflows
OWNER_SETTABLE = (Availability.AVAILABLE, Availability.MAINTENANCE)


def _resource_link(resource):
    return f'/resources/{resource.pk}'


def _lock(resource):
    return Resource.objects.select_for_update().get(pk=resource.pk)


def _ensure_unique_name(owner, name, exclude=None):
    queryset = Resource.objects.filter(owner=owner, name__iexact=name)
    if exclude is not None:
        queryset = queryset.exclude(pk=exclude.pk)
    if queryset.exists():
        raise Conflict('You already listed a resource with this name.', code='duplicate_resource')


def _reject_pending(resource, batch, title, message, exclude=None):
    """
    Reject every pending borrow request on a locked resource and queue a
    notification for each requester. Returns the number rejected.
    """
    pending = resource.pending_requests().select_related('requester')
    if exclude is not None:
        pending = pending.exclude(pk=exclude.pk)
    requesters = [borrow_request.requester for borrow_request in pending]
    rejected = pending.update(status=BorrowRequest.Status.REJECTED, decision_at=timezone.now())
    for requester in requesters:
        batch.add(
            requester,
            title,
            message,
            notification_type=Notification.Type.RESOURCE,
            category=Notification.Category.BORROW_REJECTION,
            related_entity=resource,
            related_entity_type=Notification.EntityType.RESOURCE,
            action_url=_resource_link(resource),
            action_text='View Resource',
        )
    return rejected


class ResourceService:
    """
    Service class for resource listings and the borrow lifecycle.
    """

    @staticmethod
    def create(
        owner: User,
        name: str,
        description: str,
        category: str,
        condition: str = Resource.Condition.GOOD,
        hostel_block: Optional[str] = None,
        room_number: Optional[str] = None,
        **fields,
    ) -> Resource:
        """
        List a new resource and count it towards the owner's lending total.

        Args:
            owner: User lending the item
            name: 3-100 characters, unique per owner ignoring case
            description: 10-500 characters
            category: One of Resource.Category
            condition: One of Resource.Condition
            hostel_block: Defaults to the owner's block
            room_number: Defaults to the owner's room
            **fields: Optional lending terms, tags, images and visibility

        Raises:
            InvalidInput: no hostel block or room could be resolved
            Conflict: the owner already lists a resource with this name
        """
        hostel_block = hostel_block or owner.hostel_block
        room_number = room_number or owner.room_number
        if not hostel_block or not room_number:
            raise InvalidInput('hostel_block', 'Hostel block and room number are required to list a resource.')
        _ensure_unique_name(owner, name)

        if fields.get('max_borrow_duration') is None:
            fields.pop('max_borrow_duration', None)
        resource = Resource(
            owner=owner,
            name=name,
            description=description,
            category=category,
            condition=condition,
            hostel_block=hostel_block,
            room_number=room_number,
            **fields
        )
        resource.full_clean()

        with transaction.atomic():
            resource.save()
            owner.adjust_counter('total_lent', 1)

        logger.info(f"Resource {resource.pk} listed by {owner.email}")
        return resource

    @staticmethod
    def update(actor: User, resource: Resource, **fields) -> Resource:
        """
        Edit a listing. Availability may only be moved between available and
        maintenance here; borrowing and blocking have their own operations.

        Raises:
            Forbidden: actor is not the owner
            InvalidInput: a non-editable field or a disallowed availability target
            InvalidState: the availability move is not allowed from the current state
            Conflict: the new name clashes with another of the owner's resources
        """
        if resource.owner_id != actor.pk:
            raise Forbidden('Only the resource owner can update this resource.')

        with transaction.atomic():
            resource = _lock(resource)

            for field in fields:
                if field not in EDITABLE_FIELDS:
                    raise InvalidInput(field, 'This field cannot be edited.')

            name = fields.get('name')
            if name is not None and name.lower() != resource.name.lower():
                _ensure_unique_name(actor, name, exclude=resource)

            availability = fields.pop('availability', None)
            if availability is not None and availability != resource.availability:
                if availability not in OWNER_SETTABLE:
                    raise InvalidInput('availability', 'Owners can only mark a resource available or under maintenance.')
                if resource.availability not in OWNER_SETTABLE or not resource.can_transition_to(availability):
                    raise InvalidState(f'Cannot change availability from {resource.availability} to {availability}.')
                resource.availability = availability

            for field, value in fields.items():
                setattr(resource, field, value)
            resource.full_clean()
            resource.save()

        logger.info(f"Resource {resource.pk} updated by owner")
        return resource

    @staticmethod
    def delete(actor: User, resource: Resource) -> None:
        """
        Remove a listing. Not allowed while the item is out on loan.
        Pending borrow requests are closed and their requesters told.

        Raises:
            Forbidden: actor is neither the owner nor an admin
            InvalidState: resource is borrowed
        """
        if resource.owner_id != actor.pk and not actor.is_admin:
            raise Forbidden('Only the resource owner or an admin can delete this resource.')

        batch = NotificationBatch()
        with transaction.atomic():
            resource = _lock(resource)
            if resource.availability == Availability.BORROWED:
                raise InvalidState('Cannot delete a resource that is currently borrowed.')
            _reject_pending(
                resource,
                batch,
                'Borrow Request Withdrawn',
                f'"{resource.name}" was withdrawn by its owner, so your request has been closed.',
            )
            owner = resource.owner
            resource_id = resource.pk
            resource.delete()
            owner.adjust_counter('total_lent', -1)
            batch.dispatch_on_commit()

        logger.info(f"Resource {resource_id} deleted by {actor.email}")

    @staticmethod
    def view(actor: User, resource: Resource) -> Resource:
        """Count a view by anyone other than the owner."""
        if resource.owner_id != actor.pk:
            Resource.objects.filter(pk=resource.pk).update(view_count=F('view_count') + 1)
            resource.refresh_from_db(fields=['view_count'])
        return resource

    @staticmethod
    def request_borrow(requester: User, resource: Resource, message: str = '') -> BorrowRequest:
        """
        Ask the owner to lend a resource.

        Returns:
            The pending BorrowRequest

        Raises:
            Forbidden: requester owns the resource
            InvalidState: resource is not available or already requested
            Conflict: requester already has a pending request (code ``duplicate_request``)
        """
        if resource.owner_id == requester.pk:
            raise Forbidden('You cannot request your own resource.')

        batch = NotificationBatch()
        with transaction.atomic():
            resource = _lock(resource)
            if resource.availability not in (Availability.AVAILABLE, Availability.REQUESTED):
                raise InvalidState('Resource is not available for requests.')
            if resource.pending_requests().filter(requester=requester).exists():
                raise Conflict('You already have a pending request for this resource.', code='duplicate_request')

            try:
                with transaction.atomic():
                    borrow_request = BorrowRequest.objects.create(
                        resource=resource, requester=requester, message=message or ''
                    )
            except IntegrityError:
                raise Conflict('You already have a pending request for this resource.', code='duplicate_request')

            if resource.availability == Availability.AVAILABLE:
                resource.availability = Availability.REQUESTED
                resource.save(update_fields=['availability', 'updated_at'])

            note = f': {message}' if message else ''
            batch.add(
                resource.owner,
                'New Borrow Request',
                f'{requester.full_name} requested "{resource.name}"{note}',
                notification_type=Notification.Type.RESOURCE,
                category=Notification.Category.BORROW_REQUEST,
                sender=requester,
                related_entity=resource,
                related_entity_type=Notification.EntityType.RESOURCE,
                action_url=_resource_link(resource),
                action_text='Review Request',
            )
            batch.dispatch_on_commit()

        logger.info(f"Borrow request {borrow_request.pk} on resource {resource.pk} by {requester.email}")
        return borrow_request

    @staticmethod
    def _get_request(resource, request_id):
        borrow_request = resource.borrow_requests.select_related('requester').filter(pk=request_id).first()
        if borrow_request is None:
            raise NotFound('Borrow request not found.')
        return borrow_request

    @staticmethod
    def approve_request(owner: User, resource: Resource, request_id, duration: Optional[int] = None) -> Resource:
        """
        Lend the resource to one requester.

        The chosen request is approved, every other pending request is rejected,
        an active BorrowRecord is opened and both borrow counters move, all in
        one transaction.

        Args:
            owner: Resource owner
            resource: Resource to lend
            request_id: Pending BorrowRequest to approve
            duration: Loan length in days (1-30), defaults to the resource's max

        Raises:
            Forbidden: actor is not the owner
            InvalidInput: duration outside 1-30
            NotFound: no such request on this resource
            InvalidState: resource already borrowed or request not pending
        """
        if resource.owner_id != owner.pk:
            raise Forbidden('Only the resource owner can approve requests.')
        if duration is not None and not 1 <= duration <= 30:
            raise InvalidInput('duration', 'Borrow duration must be between 1 and 30 days.')

        batch = NotificationBatch()
        with transaction.atomic():
            resource = _lock(resource)
            if resource.availability == Availability.BORROWED:
                raise InvalidState('Resource is already borrowed.')
            borrow_request = ResourceService._get_request(resource, request_id)
            if borrow_request.status != BorrowRequest.Status.PENDING:
                raise InvalidState('This borrow request is no longer pending.')

            now = timezone.now()
            borrower = borrow_request.requester
            due_date = now + timedelta(days=duration or resource.max_borrow_duration)

            won = Resource.objects.filter(
                pk=resource.pk,
                availability__in=[Availability.AVAILABLE, Availability.REQUESTED],
            ).update(
                availability=Availability.BORROWED,
                current_borrower=borrower,
                total_borrows=F('total_borrows') + 1,
                updated_at=now,
            )
            if not won:
                raise InvalidState('Resource is not available to lend.')

            approved = BorrowRequest.objects.filter(
                pk=borrow_request.pk, status=BorrowRequest.Status.PENDING
            ).update(status=BorrowRequest.Status.APPROVED, decision_at=now)
            if not approved:
                raise InvalidState('This borrow request is no longer pending.')

            _reject_pending(
                resource,
                batch,
                'Borrow Request Rejected',
                f'Your request for "{resource.name}" was declined because it was lent to someone else.',
                exclude=borrow_request,
            )

            try:
                with transaction.atomic():
                    BorrowRecord.objects.create(
                        resource=resource,
                        borrower=borrower,
                        request=borrow_request,
                        borrowed_at=now,
                        due_date=due_date,
                    )
            except IntegrityError:
                raise InvalidState('Resource already has an active borrow.')

            borrower.adjust_counter('total_borrowed', 1)

            batch.add(
                borrower,
                'Borrow Request Approved',
                f'Your request for "{resource.name}" was approved. Due date: {due_date:%Y-%m-%d}.',
                notification_type=Notification.Type.RESOURCE,
                category=Notification.Category.BORROW_APPROVAL,
                sender=owner,
                related_entity=resource,
                related_entity_type=Notification.EntityType.RESOURCE,
                action_url=_resource_link(resource),
                action_text='View Resource',
                metadata={'due_date': due_date.isoformat()},
            )
            batch.dispatch_on_commit()

        resource.refresh_from_db()
        logger.info(f"Borrow request {borrow_request.pk} approved; {resource.pk} lent to {borrower.email}")
        return resource

    @staticmethod
    def reject_request(owner: User, resource: Resource, request_id) -> Resource:
        """
        Decline one pending request. The resource goes back to available when
        no other request is pending.

        Raises:
            Forbidden: actor is not the owner
            NotFound: no such request on this resource
            InvalidState: request not pending
        """
        if resource.owner_id != owner.pk:
            raise Forbidden('Only the resource owner can reject requests.')

        batch = NotificationBatch()
        with transaction.atomic():
            resource = _lock(resource)
            borrow_request = ResourceService._get_request(resource, request_id)

            rejected = BorrowRequest.objects.filter(
                pk=borrow_request.pk, status=BorrowRequest.Status.PENDING
            ).update(status=BorrowRequest.Status.REJECTED, decision_at=timezone.now())
            if not rejected:
                raise InvalidState('This borrow request is no longer pending.')

            if resource.availability == Availability.REQUESTED and not resource.pending_requests().exists():
                resource.availability = Availability.AVAILABLE
                resource.save(update_fields=['availability', 'updated_at'])

            batch.add(
                borrow_request.requester,
                'Borrow Request Rejected',
                f'Your request for "{resource.name}" was rejected.',
                notification_type=Notification.Type.RESOURCE,
                category=Notification.Category.BORROW_REJECTION,
                sender=owner,
                related_entity=resource,
                related_entity_type=Notification.EntityType.RESOURCE,
                action_url=_resource_link(resource),
                action_text='View Resource',
            )
            batch.dispatch_on_commit()

        logger.info(f"Borrow request {borrow_request.pk} rejected")
        return resource

    @staticmethod
    def mark_available(actor: User, resource: Resource, rating: Optional[int] = None, feedback: str = '') -> Resource:
        """
        Take a resource back: close the active borrow (with an optional rating
        of the borrower's care), refresh the average rating and free the item.

        Raises:
            Forbidden: actor is neither the owner nor an admin
            InvalidInput: rating outside 1-5, or a rating with no active borrow to attach it to
            InvalidState: resource is requested or blocked
        """
        if resource.owner_id != actor.pk and not actor.is_admin:
            raise Forbidden('Only the resource owner or an admin can mark it available.')
        if rating is not None and not 1 <= rating <= 5:
            raise InvalidInput('rating', 'Rating must be between 1 and 5.')

        batch = NotificationBatch()
        with transaction.atomic():
            resource = _lock(resource)
            if resource.availability in (Availability.REQUESTED, Availability.UNAVAILABLE):
                raise InvalidState(f'A {resource.availability} resource cannot be marked available here.')

            borrower = resource.current_borrower
            record = resource.borrow_records.select_for_update().filter(status=BorrowRecord.Status.ACTIVE).first()
            if record is not None:
                record.status = BorrowRecord.Status.RETURNED
                record.returned_at = timezone.now()
                record.rating = rating
                record.feedback = feedback or ''
                record.save(update_fields=['status', 'returned_at', 'rating', 'feedback', 'updated_at'])
                borrower = borrower or record.borrower
            elif rating is not None:
                raise InvalidInput('rating', 'There is no active borrow to rate.')

            resource.recompute_average_rating()
            resource.current_borrower = None
            resource.availability = Availability.AVAILABLE
            resource.save(update_fields=['average_rating', 'current_borrower', 'availability', 'updated_at'])

            if record is not None:
                batch.add(
                    borrower,
                    'Resource Returned',
                    f'Your return of "{resource.name}" has been recorded. Thank you!',
                    notification_type=Notification.Type.RESOURCE,
                    category=Notification.Category.RETURNED,
                    sender=actor,
                    related_entity=resource,
                    related_entity_type=Notification.EntityType.RESOURCE,
                    action_url=_resource_link(resource),
                    action_text='View Resource',
                )
            batch.dispatch_on_commit()

        logger.info(f"Resource {resource.pk} marked available by {actor.email}")
        return resource

    @staticmethod
    def request_return(actor: User, resource: Resource) -> None:
        """
        Let the owner know the borrower wants to hand the item back.

        Raises:
            Forbidden: actor is not the current borrower
        """
        if resource.current_borrower_id != actor.pk or resource.availability != Availability.BORROWED:
            raise Forbidden('Only the current borrower can request a return.')

        batch = NotificationBatch()
        batch.add(
            resource.owner,
            'Return Requested',
            f'{actor.full_name} has requested to return "{resource.name}". '
            f'Please mark it available once received.',
            notification_type=Notification.Type.RESOURCE,
            category=Notification.Category.RETURNED,
            sender=actor,
            related_entity=resource,
            related_entity_type=Notification.EntityType.RESOURCE,
            action_url=_resource_link(resource),
            action_text='Mark Available',
        )
        batch.dispatch_on_commit()
        logger.info(f"Return requested for resource {resource.pk} by {actor.email}")

    @staticmethod
    def set_blocked(actor: User, resource: Resource, action: str) -> Resource:
        """
        Block a resource from lending, or lift the block (wardens and admins).

        Blocking a requested resource declines its pending requests. A borrowed
        resource cannot be blocked, and only a blocked resource can be unblocked.

        Raises:
            InvalidInput: action is not ``block`` or ``unblock``
            Forbidden: actor is not staff, or is a warden of another block
            InvalidState: the move is not allowed from the current availability
        """
        if action not in ('block', 'unblock'):
            raise InvalidInput('action', 'Action must be "block" or "unblock".')
        if not actor.is_staff_member:
            raise Forbidden('Only wardens and admins can block resources.')
        if not actor.can_manage_block(resource.hostel_block):
            raise Forbidden('You can only block resources in your hostel block.')

        batch = NotificationBatch()
        with transaction.atomic():
            resource = _lock(resource)
            if action == 'block':
                if resource.availability == Availability.BORROWED:
                    raise InvalidState('A borrowed resource cannot be blocked until it is returned.')
                if not resource.can_transition_to(Availability.UNAVAILABLE):
                    raise InvalidState('Resource is already blocked.')
                _reject_pending(
                    resource,
                    batch,
                    'Borrow Request Rejected',
                    f'Your request for "{resource.name}" was declined because the item was withdrawn.',
                )
                resource.availability = Availability.UNAVAILABLE
            else:
                if resource.availability != Availability.UNAVAILABLE:
                    raise InvalidState('Only blocked resources can be unblocked.')
                resource.availability = Availability.AVAILABLE
            resource.save(update_fields=['availability', 'updated_at'])

            batch.add(
                resource.owner,
                'Resource Blocked' if action == 'block' else 'Resource Unblocked',
                f'Your resource "{resource.name}" was {action}ed by the {actor.get_role_display().lower()}.',
                notification_type=Notification.Type.WARNING if action == 'block' else Notification.Type.SYSTEM,
                category=Notification.Category.UPDATE,
                sender=actor,
                related_entity=resource,
                related_entity_type=Notification.EntityType.RESOURCE,
                action_url=_resource_link(resource),
                action_text='View Resource',
            )
            batch.dispatch_on_commit()

        logger.info(f"Resource {resource.pk} {action}ed by {actor.email}")
        return resource

    @staticmethod
    def add_to_wishlist(user: User, resource: Resource) -> bool:
        """Returns True if the entry was created, False if it already existed."""
        _, created = WishlistEntry.objects.get_or_create(resource=resource, user=user)
        return created

    @staticmethod
    def remove_from_wishlist(user: User, resource: Resource) -> bool:
        deleted, _ = WishlistEntry.objects.filter(resource=resource, user=user).delete()
        return bool(deleted)

    @staticmethod
    def mine(user: User, kind: str = 'owned'):
        """
        The user's own listings, the items they currently borrow, or their wishlist.
        """
        if kind == 'owned':
            return Resource.objects.filter(owner=user)
        if kind == 'borrowed':
            return Resource.objects.filter(current_borrower=user, availability=Availability.BORROWED)
        if kind == 'wishlist':
            return Resource.objects.filter(wishlist_entries__user=user)
        raise InvalidInput('type', 'Type must be one of owned, borrowed or wishlist.')

    @staticmethod
    def stats(actor: User, hostel_block: Optional[str] = None, time_range_days: int = 30) -> Dict:
        """
        Resource statistics for staff dashboards.

        Returns:
            Dictionary with availability counts, category breakdown and the
            five most borrowed and highest rated resources
        """
        if not actor.is_staff_member:
            raise Forbidden('Only wardens and admins can view resource statistics.')

        queryset = Resource.objects.filter(created_at__gte=timezone.now() - timedelta(days=time_range_days))
        if hostel_block:
            queryset = queryset.filter(hostel_block=hostel_block)

        overview = queryset.aggregate(
            total=Count('id'),
            **{
                value: Count('id', filter=Q(availability=value))
                for value in Availability.values
            }
        )
        overview['availability_rate'] = (
            round(overview['available'] / overview['total'] * 100, 1) if overview['total'] else 0
        )

        def top(ordered):
            return [
                {
                    'id': resource.pk,
                    'name': resource.name,
                    'owner': resource.owner.full_name,
                    'total_borrows': resource.total_borrows,
                    'average_rating': resource.average_rating,
                }
                for resource in ordered.select_related('owner')[:5]
            ]

        return {
            'overview': overview,
            'category_breakdown': list(
                queryset.values('category').annotate(count=Count('id')).order_by('-count', 'category')
            ),
            'most_borrowed': top(queryset.filter(total_borrows__gt=0).order_by('-total_borrows', 'name')),
            'highest_rated': top(queryset.filter(average_rating__gt=0).order_by('-average_rating', 'name')),
        }


class ResourceRequestService:
    """
    Service class for standing resource requests and their fulfillment.
    """

    @staticmethod
    def create(requester: User, title: str, description: str, category: str) -> ResourceRequest:
        resource_request = ResourceRequest(
            requested_by=requester,
            title=title,
            description=description,
            category=category,
            status=ResourceRequest.Status.OPEN,
        )
        resource_request.full_clean()
        resource_request.save()
        logger.info(f"Resource request {resource_request.pk} opened by {requester.email}")
        return resource_request

    @staticmethod
    def cancel(actor: User, resource_request: ResourceRequest) -> ResourceRequest:
        """
        Raises:
            Forbidden: actor did not open the request
            InvalidState: request is no longer open
        """
        if resource_request.requested_by_id != actor.pk:
            raise Forbidden('Only the requester can cancel this request.')

        updated = ResourceRequest.objects.filter(
            pk=resource_request.pk, status=ResourceRequest.Status.OPEN
        ).update(status=ResourceRequest.Status.CANCELLED, updated_at=timezone.now())
        if not updated:
            raise InvalidState('Only open requests can be cancelled.')

        resource_request.refresh_from_db()
        return resource_request

    @staticmethod
    def fulfill(
        fulfiller: User,
        resource_request: ResourceRequest,
        condition: str,
        title: str = '',
        description: str = '',
        image_url: str = '',
    ) -> ResourceRequest:
        """
        Answer an open request by listing a matching resource.

        The request is closed and the new resource created in one transaction,
        so either both rows exist afterwards or neither does.

        Args:
            fulfiller: User offering the item
            resource_request: Open request being answered
            condition: Condition of the offered item
            title: Resource name, defaults to the request title
            description: Resource description, defaults to the request description
            image_url: Optional photo of the item

        Returns:
            The fulfilled ResourceRequest, with ``fulfilled_resource`` set

        Raises:
            InvalidState: request is not open
            Forbidden: fulfiller opened the request
            InvalidInput: fulfiller's profile has no block or room
            Conflict: fulfiller already lists a resource with the same name
        """
        if resource_request.status != ResourceRequest.Status.OPEN:
            raise InvalidState('Only open requests can be fulfilled.')
        if resource_request.requested_by_id == fulfiller.pk:
            raise Forbidden('You cannot fulfill your own request.')
        if not fulfiller.has_residence:
            raise InvalidInput('hostel_block', 'Profile missing hostel info. Update your profile first.')

        name = (title or '').strip() or resource_request.title
        details = ((description or '').strip() or resource_request.description)[:500]

        batch = NotificationBatch()
        with transaction.atomic():
            resource_request = ResourceRequest.objects.select_for_update().get(pk=resource_request.pk)
            if resource_request.status != ResourceRequest.Status.OPEN:
                raise InvalidState('Only open requests can be fulfilled.')
            _ensure_unique_name(fulfiller, name)

            resource = Resource(
                owner=fulfiller,
                name=name,
                description=details,
                category=resource_request.category,
                condition=condition,
                hostel_block=fulfiller.hostel_block,
                room_number=fulfiller.room_number,
                images=[image_url] if image_url else [],
                is_public=True,
            )
            resource.full_clean()
            resource.save()

            now = timezone.now()
            closed = ResourceRequest.objects.filter(
                pk=resource_request.pk, status=ResourceRequest.Status.OPEN
            ).update(
                status=ResourceRequest.Status.FULFILLED,
                fulfilled_by=fulfiller,
                fulfilled_resource=resource,
                fulfilled_at=now,
                updated_at=now,
            )
            if not closed:
                raise InvalidState('Only open requests can be fulfilled.')

            fulfiller.adjust_counter('total_lent', 1)

            batch.add(
                resource_request.requested_by,
                'Your Request Was Fulfilled',
                f'"{resource.name}" is now available to borrow from {fulfiller.full_name} '
                f'({fulfiller.full_address}).',
                notification_type=Notification.Type.RESOURCE,
                category=Notification.Category.NEW,
                sender=fulfiller,
                related_entity=resource,
                related_entity_type=Notification.EntityType.RESOURCE,
                action_url=_resource_link(resource),
                action_text='View Resource',
                metadata={
                    'holder_name': fulfiller.full_name,
                    'hostel_block': fulfiller.hostel_block,
                    'room_number': fulfiller.room_number,
                },
            )
            batch.dispatch_on_commit()

        resource_request.refresh_from_db()
        logger.info(f"Resource request {resource_request.pk} fulfilled by {fulfiller.email} with {resource.pk}")
        return resource_request
