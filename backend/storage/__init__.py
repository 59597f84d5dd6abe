"""File-based JSON storage.

Data layout:
  data/
    config.json          App settings (backend URL, model, sampling, chat defaults)
    characters/
      <id>.json          Character definition: name, description, topic forest

Character ids are slugs of the character name: Unicode normalize → strip
non-ASCII → lowercase → replace non-alnum runs with hyphen → strip
leading/trailing hyphens.

Conversation memory is process-local: get_character() returns the same
Character object every time, and its memory is never written to disk.

Config: get_config() returns defaults merged with stored values.
merge_config() applies partial updates without writing: sampling merged
key-by-key, scalars overwritten. update_config() merges and persists.
get_api_key() prefers OPENAI_API_KEY over the stored key.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    characters_dir,
    data_dir,
    init_storage,
    slugify,
)

from .characters import (  # noqa: F401
    create_character,
    delete_character,
    get_character,
    list_characters,
    save_character,
)

from .config import (  # noqa: F401
    API_KEY_ENV,
    get_api_key,
    get_config,
    merge_config,
    public_config,
    save_config,
    update_config,
)
