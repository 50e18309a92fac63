import re
import secrets
from typing import Any, Dict, Optional

import structlog
from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query

from auth import get_current_user, is_admin, optional_user, require_admin
from database import create_document, db, touch, utcnow
from helpers import contains, oid, ok
from schemas import CommentCreate, LookbookCreate, Lookbookpost, LookbookUpdate, ReactionRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/lookbook", tags=["lookbook"])


def slugify(title: str) -> str:
    base = re.sub(r"[^a-z0-9\s-]", "", title.lower().strip())
    base = re.sub(r"\s+", "-", base)[:100]
    return f"{base}-{secrets.token_hex(3)}"


def cover_from(images) -> Optional[str]:
    for image in images or []:
        if image.get("url"):
            return image["url"]
    return None


def public_post(post: Dict[str, Any], viewer_id: Optional[str] = None) -> Dict[str, Any]:
    likes = post.get("likes") or []
    dislikes = post.get("dislikes") or []
    reaction = None
    if viewer_id:
        if viewer_id in likes:
            reaction = "like"
        elif viewer_id in dislikes:
            reaction = "dislike"
    return {
        "id": str(post["_id"]),
        "title": post.get("title"),
        "slug": post.get("slug"),
        "content": post.get("content"),
        "cover_image": post.get("cover_image"),
        "images": post.get("images") or [],
        "tags": post.get("tags") or [],
        "author_id": post.get("author_id"),
        "is_published": post.get("is_published", True),
        "like_count": len(likes),
        "dislike_count": len(dislikes),
        "comment_count": len(post.get("comments") or []),
        "user_reaction": reaction,
        "published_at": post.get("published_at"),
        "created_at": post.get("created_at"),
        "updated_at": post.get("updated_at"),
    }


def _viewer(user: Optional[Dict[str, Any]]) -> Optional[str]:
    return str(user["_id"]) if user else None


def _load(post_id: str) -> Dict[str, Any]:
    post = db["lookbookpost"].find_one({"_id": oid(post_id)})
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.get("")
def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=50),
    search: Optional[str] = None,
    user=Depends(optional_user),
):
    where: Dict[str, Any] = {} if is_admin(user) else {"is_published": True}
    if search and search.strip():
        where["title"] = contains(search.strip())
    total = db["lookbookpost"].count_documents(where)
    cursor = db["lookbookpost"].find(where).sort("published_at", -1).skip((page - 1) * limit).limit(limit)
    viewer = _viewer(user)
    return ok({"page": page, "limit": limit, "total": total, "posts": [public_post(p, viewer) for p in cursor]})


@router.get("/{post_id}")
def get_post(post_id: str, user=Depends(optional_user)):
    post = _load(post_id)
    if not post.get("is_published", True) and not is_admin(user):
        raise HTTPException(status_code=403, detail="Not authorized to view draft")
    return ok({"post": public_post(post, _viewer(user)), "comments": post.get("comments") or []})


@router.post("", status_code=201)
def create_post(payload: LookbookCreate, user=Depends(require_admin)):
    images = [i.model_dump() for i in payload.images]
    post = Lookbookpost(
        title=payload.title,
        slug=slugify(payload.title),
        content=payload.content,
        images=images,
        cover_image=cover_from(images),
        tags=payload.tags,
        author_id=str(user["_id"]),
        is_published=payload.is_published,
        published_at=utcnow(),
    )
    post_id = create_document("lookbookpost", post)
    logger.info("lookbook_post_created", post_id=post_id)
    return ok({"post": public_post(_load(post_id), _viewer(user))}, "Post created")


@router.put("/{post_id}")
def update_post(post_id: str, payload: LookbookUpdate, user=Depends(require_admin)):
    post = _load(post_id)
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if "images" in updates and not post.get("cover_image"):
        updates["cover_image"] = cover_from(updates["images"])
    if updates:
        db["lookbookpost"].update_one({"_id": post["_id"]}, {"$set": touch(updates)})
    return ok({"post": public_post(_load(post_id), _viewer(user))}, "Post updated")


@router.delete("/{post_id}")
def delete_post(post_id: str, user=Depends(require_admin)):
    result = db["lookbookpost"].delete_one({"_id": oid(post_id)})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Post not found")
    logger.info("lookbook_post_deleted", post_id=post_id)
    return ok(message="Post deleted")


@router.post("/{post_id}/reaction")
def react(post_id: str, payload: ReactionRequest, user=Depends(get_current_user)):
    post = _load(post_id)
    viewer = _viewer(user)
    # a user holds at most one reaction per post
    target = "likes" if payload.type == "like" else "dislikes"
    db["lookbookpost"].update_one({"_id": post["_id"]}, {"$pull": {"likes": viewer, "dislikes": viewer}})
    db["lookbookpost"].update_one({"_id": post["_id"]}, {"$push": {target: viewer}})
    return ok({"post": public_post(_load(post_id), viewer)})


@router.post("/{post_id}/comments", status_code=201)
def add_comment(post_id: str, payload: CommentCreate, user=Depends(get_current_user)):
    post = _load(post_id)
    comment = {
        "id": str(ObjectId()),
        "user_id": str(user["_id"]),
        "content": payload.content,
        "created_at": utcnow(),
    }
    db["lookbookpost"].update_one({"_id": post["_id"]}, {"$push": {"comments": comment}})
    return ok({"comments": _load(post_id).get("comments") or []}, "Comment added")


@router.delete("/{post_id}/comments/{comment_id}")
def delete_comment(post_id: str, comment_id: str, user=Depends(get_current_user)):
    post = _load(post_id)
    comment = next((c for c in post.get("comments") or [] if c.get("id") == comment_id), None)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    if not is_admin(user) and comment.get("user_id") != str(user["_id"]):
        raise HTTPException(status_code=403, detail="Not authorized to delete this comment")

    db["lookbookpost"].update_one({"_id": post["_id"]}, {"$pull": {"comments": {"id": comment_id}}})
    return ok({"comments": _load(post_id).get("comments") or []}, "Comment deleted")
