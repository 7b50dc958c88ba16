"""
Public blog endpoints: beauty tips and news written in the back office.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db

router = APIRouter(prefix="/blog", tags=["Blog"])


@router.get("", response_model=schemas.BlogPostList)
def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    search: Optional[str] = None,
    featured: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    """Published posts, most recently published first."""
    posts, total = crud.get_blog_posts(
        db, skip=(page - 1) * limit, limit=limit, search=search, featured=featured
    )
    return schemas.BlogPostList(
        data=[schemas.BlogPostSummary.model_validate(p) for p in posts],
        pagination=schemas.Pagination.build(page, limit, total),
    )


@router.get("/{post_ref}", response_model=schemas.BlogPost)
def get_post(post_ref: str, db: Session = Depends(get_db)):
    """
    Get a published post by slug or ID and count the view.

    Raises:
        HTTPException: 404 if missing or still a draft
    """
    post = crud.get_published_post(db, post_ref)
    if post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    crud.record_blog_view(db, post.id)
    return crud.get_blog_post(db, post.id)
