import argparse
import logging
import shlex
import sys
from typing import Any, Dict, List, Optional, Sequence, Tuple

# (flag, type, default, description)
Template = Sequence[Tuple[str, type, Any, str]]

logger = logging.getLogger(__name__)

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def flag_to_dest(flag: str) -> str:
    return flag.lstrip("-").replace("-", "_")


def to_bool(value: str) -> bool:
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def parse_args(
    template: Template,
    args: List[str],
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Parse a list of CLI-style arguments using a dynamic template.

    template example:
        (
            ("--cards_dir", str, None, "Collection folder(s)"),
            ("--debug", bool, False, "Verbose logging"),
        )

    - bool flags: '--debug' or '--debug false'
    - other flags: one or more values, always returned as a list
    - flags that were not given are None (defaults are applied later)

    Returns:
        (known_args_dict, unknown_args_list)
    """
    parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)

    for flag, typ, _default, desc in template:
        dest = flag_to_dest(flag)
        if typ is bool:
            parser.add_argument(
                flag, dest=dest, type=to_bool, nargs="?", const=True, help=desc
            )
        else:
            parser.add_argument(flag, dest=dest, type=typ, nargs="+", help=desc)

    try:
        namespace, unknown_args = parser.parse_known_args(args)
    except SystemExit:
        # if parsing fails, treat everything as unknown
        return {}, list(args)

    known_args = vars(namespace)  # Namespace -> dict
    return known_args, unknown_args


def get_config_args(path: str, template: Template) -> Tuple[Dict[str, Any], List[str]]:
    """
    Read arguments from a config file and parse them with the same template.
    """
    config_args_raw: List[str] = []

    with open(path, "r", encoding="utf-8") as file:
        for line in file:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            config_args_raw.extend(shlex.split(line))

    return parse_args(template=template, args=config_args_raw)


def merge_args(args: Dict[str, Any], overwrite_args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two dicts of parsed arguments.

    - 'args' usually comes from config file (defaults).
    - 'overwrite_args' usually comes from CLI.

    Rules:
        - None or "" in overwrite_args = "not provided", do NOT overwrite.
        - Everything else in overwrite_args overrides args.
    """
    merged_args = dict(args)
    for key, value in overwrite_args.items():
        if value not in (None, ""):
            merged_args[key] = value
    return merged_args


def apply_defaults(template: Template, args: Dict[str, Any]) -> Dict[str, Any]:
    defaults = {flag_to_dest(flag): default for flag, _typ, default, _desc in template}
    return merge_args(defaults, args)


def get_one(args: Dict[str, Any], key: str, default: Any = None) -> Any:
    """First value of a list-valued arg (or the scalar itself)."""
    value = args.get(key)
    if isinstance(value, list):
        return value[0] if value else default
    return default if value is None else value


def setup_args(
    template: Template,
    default_config_path: str,
    argv: Optional[List[str]] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    High-level helper:

    1. Parse startup (CLI) arguments from argv (sys.argv[1:] by default).
    2. Determine config path (CLI 'config_path' or default_config_path).
    3. Try to read and parse config file.
    4. Merge config args with CLI args (CLI wins), then fill defaults.
    5. Return (known_args_dict, unknown_args_list).
    """
    argv = sys.argv[1:] if argv is None else argv

    # 1. Parse CLI args
    known_startup_args, unknown_startup_args = parse_args(
        template=template,
        args=argv,
    )

    # 2. Decide config path
    config_path = get_one(known_startup_args, "config_path") or default_config_path

    try:
        # 3. Parse config-file args
        known_config_args, unknown_config_args = get_config_args(
            path=config_path,
            template=template,
        )
    except FileNotFoundError:
        logger.warning(
            "Config file %s not found, using only startup arguments", config_path
        )
        return apply_defaults(template, known_startup_args), unknown_startup_args

    # 4. Merge known; concat unknown (config first, then CLI)
    merged_known = merge_args(
        args=known_config_args,
        overwrite_args=known_startup_args,
    )
    merged_unknown = unknown_config_args + unknown_startup_args

    return apply_defaults(template, merged_known), merged_unknown
