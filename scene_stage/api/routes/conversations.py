"""Conversation CRUD + messages + characters endpoints."""

from fastapi import APIRouter, HTTPException, Request

from scene_stage import storage

from .models import CreateConversation, SaveCharacters

router = APIRouter()


def _require(slug: str) -> dict:
    conversation = storage.get_conversation(slug)
    if not conversation:
        raise HTTPException(404, "Conversation not found")
    return conversation


async def _rebuild(request: Request, slug: str) -> None:
    """Recompile an open session after its history or characters changed."""
    sessions = request.app.state.sessions
    if slug in sessions:
        session = await sessions.get(slug)
        await session.rebuild()


@router.get("/conversations")
async def list_conversations():
    """List all conversations."""
    return storage.list_conversations()


@router.post("/conversations")
async def create_conversation(body: CreateConversation):
    """Create an empty conversation."""
    return storage.create_conversation(body.title, body.persona_name)


@router.get("/conversations/{slug}")
async def get_conversation(slug: str):
    """Get a single conversation by slug."""
    return _require(slug)


@router.delete("/conversations/{slug}")
async def delete_conversation(slug: str, request: Request):
    """Delete a conversation and all its data."""
    request.app.state.sessions.drop(slug)
    if not storage.delete_conversation(slug):
        raise HTTPException(404, "Conversation not found")
    return {"ok": True}


@router.get("/conversations/{slug}/messages")
async def get_messages(slug: str):
    """Get the chat message history."""
    _require(slug)
    return storage.get_messages(slug)


@router.delete("/conversations/{slug}/messages/{index}")
async def delete_message(slug: str, index: int, request: Request):
    """Delete a single message by index and rebuild the scene."""
    _require(slug)
    try:
        messages = storage.delete_message(slug, index)
    except IndexError:
        raise HTTPException(404, "Message not found")
    await _rebuild(request, slug)
    return messages


@router.get("/conversations/{slug}/characters")
async def get_characters(slug: str):
    """Get the characters the scene may reference."""
    _require(slug)
    return storage.get_characters(slug)


@router.put("/conversations/{slug}/characters")
async def save_characters(slug: str, body: SaveCharacters, request: Request):
    """Replace the character list and rebuild the scene."""
    _require(slug)
    storage.save_characters(slug, body.characters)
    await _rebuild(request, slug)
    return storage.get_characters(slug)
