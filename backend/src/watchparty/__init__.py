"""Watch-party session core: rooms, media resolution and the voice mesh."""
