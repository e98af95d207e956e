import logging

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import NotFound, RecipeShareError
from ..models import Collection, CollectionSubscription

logger = logging.getLogger("recipeshare.subscriptions")


class CannotSubscribe(RecipeShareError):
    http_status = 400
    default_code = "CANNOT_SUBSCRIBE"
    default_message = "Cannot subscribe to this collection"


def is_subscribed(db: Session, household_id: str, collection_id: str) -> bool:
    return db.scalar(
        select(CollectionSubscription.id).where(
            CollectionSubscription.household_id == household_id,
            CollectionSubscription.collection_id == collection_id,
        )
    ) is not None


def toggle_subscription(db: Session, household_id: str, collection_id: str) -> bool:
    """Subscribe to, or unsubscribe from, another household's collection.

    Returns the new subscription state. Only public collections owned by
    someone else can be subscribed to; an existing subscription can always be
    dropped, even after the owner made the collection private.
    """
    with unit_of_work(db, operation="subscription toggle"):
        collection = db.get(Collection, collection_id)
        if collection is None:
            raise NotFound("Collection not found", code="COLLECTION_NOT_FOUND")

        if is_subscribed(db, household_id, collection_id):
            db.execute(
                delete(CollectionSubscription).where(
                    CollectionSubscription.household_id == household_id,
                    CollectionSubscription.collection_id == collection_id,
                )
            )
            subscribed = False
        else:
            if collection.household_id == household_id:
                raise CannotSubscribe("Cannot subscribe to your own collection")
            if not collection.is_public:
                # Private collections are invisible to non-owners
                raise NotFound("Collection not found", code="COLLECTION_NOT_FOUND")
            db.add(CollectionSubscription(household_id=household_id, collection_id=collection_id))
            subscribed = True

    logger.info(
        f"Household {household_id} {'subscribed to' if subscribed else 'unsubscribed from'} collection {collection_id}"
    )
    return subscribed
