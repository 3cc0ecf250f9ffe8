"""Predicate labels shared across platforms."""

FOLLOWS = "follows"
SUBSCRIBES_TO = "subscribes_to"
CREATED_PLAYLIST = "created_playlist"
TOP_TRACK = "top_track"
TOP_ARTIST = "top_artist"
MEMBER_OF = "member_of"
