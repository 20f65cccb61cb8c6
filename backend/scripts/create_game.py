import argparse
import time
from pathlib import Path

import yaml
from loguru import logger
from pydantic import ValidationError

from roundbet.db import init_db, session_scope
from roundbet.schemas import GameCreate
from roundbet.services.admin_service import AdminService, GameDefinition


def load_game_definition(path: Path) -> GameDefinition:
    """Read a YAML game file and validate it with the API request schema."""

    raw = yaml.safe_load(path.read_text())
    if not isinstance(raw, dict):
        raise ValueError(f"Game file {path} must contain a mapping at the top level")
    try:
        payload = GameCreate.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid game file {path}: {exc}") from exc
    return GameDefinition(
        game_id=payload.game_id,
        kind=payload.kind,
        config=payload.config.to_domain(),
        admins=list(payload.admins),
        assets=dict(payload.assets),
        rotation=list(payload.rotation),
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Instantiate a game from a YAML definition")
    parser.add_argument("path", type=Path, help="YAML file describing the game")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the definition without writing to the database",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    definition = load_game_definition(args.path)
    logger.info(
        "Loaded {} game {} ({} admins, {} assets)",
        definition.kind.value,
        definition.game_id,
        len(definition.admins),
        len(definition.assets),
    )
    if args.dry_run:
        logger.info("Dry run requested; game {} not created", definition.game_id)
        return

    init_db()
    with session_scope() as session:
        AdminService(session).create_game(definition, int(time.time()))
    logger.info("Game {} created", definition.game_id)


if __name__ == "__main__":
    main()
