from typing import Any, Dict, List

from app.parser import VideoDataParser

SPLASH_TEXT = "My splash screen"


def menu_items(logged_in: bool) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = [
        {"url": "/", "label": "home"},
        {"url": "/settings", "label": "settings", "hidden": True},
    ]
    if logged_in:
        items.append({"url": "/logout", "label": "logout", "hidden": True})
    else:
        items.append({"url": "/login", "label": "login", "hidden": True})
    return items


def shell_state(logged_in: bool, parser: VideoDataParser) -> Dict[str, Any]:
    """Header menu plus splash/ready flag for the front-end shell."""
    ready = parser.is_initialized()
    return {
        "loggedIn": logged_in,
        "menu": menu_items(logged_in),
        "ready": ready,
        "splash": None if ready else SPLASH_TEXT,
    }
