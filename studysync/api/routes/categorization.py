"""Categorization routes - course suggestions and user-managed rules."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from studysync.api.deps import get_current_user_id, get_db
from studysync.core.logging import get_logger
from studysync.schemas.api import RuleIn, RuleOut, SuggestionOut
from studysync.services.categorization import categorize_items
from studysync.services.item_store import ItemStore

router = APIRouter(prefix="/categorization", tags=["categorization"])
log = get_logger("categorization_routes")


@router.get("/suggestions", response_model=list[SuggestionOut])
def get_suggestions(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Suggest a course for every item that has none.

    Nothing is written; confirming a suggestion means creating a rule.
    """
    store = ItemStore(db)
    unlabeled = store.query_unlabeled(user_id)
    suggestions = categorize_items(unlabeled, store.list_rules(user_id))

    return [
        SuggestionOut(item_id=item.id, title=item.title, suggested_course=suggestions[item.id])
        for item in unlabeled
        if item.id in suggestions
    ]


@router.get("/rules", response_model=list[RuleOut])
def list_rules(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """All rules of the calling user, newest first (the order they are applied in)."""
    return [RuleOut.model_validate(rule) for rule in ItemStore(db).list_rules(user_id)]


@router.post("/rules", response_model=RuleOut, status_code=201)
def upsert_rule(
    payload: RuleIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create a rule, or retarget the existing rule with the same match."""
    rule = ItemStore(db).upsert_rule(user_id, payload.match_type, payload.match_value.strip(), payload.course_name.strip())
    log.info(f"Saved rule {rule.match_type}={rule.match_value!r} -> {rule.course_name!r} for user={user_id}")
    return RuleOut.model_validate(rule)


@router.delete("/rules/{rule_id}", status_code=204)
def delete_rule(
    rule_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not ItemStore(db).delete_rule(user_id, rule_id):
        raise HTTPException(status_code=404, detail=f"Rule '{rule_id}' not found")
    return Response(status_code=204)
