"""Merging of configuration documents by block address.

The overlay is machine generated and wins for everything it sets:
attributes are overwritten one by one, while nested blocks are replaced
wholesale per block type.
"""

import copy
import logging

from .errors import ConfigError
from .hcl import Block, Body, Document

logger = logging.getLogger(__name__)


def merge_file(dst: Document, src: Document) -> Document:
    """
    Merge the top-level blocks of src into dst, in place.

    Blocks with the same address are merged with merge_block; any other
    block of src is appended to dst after a blank line.

    Args:
        dst: Base document (modified)
        src: Overlay document

    Returns:
        The merged dst document
    """
    dst_blocks = {blk.address_str: blk for blk in dst.body.blocks()}
    for blk in src.body.blocks():
        target = dst_blocks.get(blk.address_str)
        if target is not None:
            merge_block(target, blk)
            continue
        if dst.body.items and not dst.body.ends_with_blank_line():
            dst.body.append_newline()
        dst.body.append_block(copy.deepcopy(blk))
    return dst


def merge_block(dst: Block, src: Block) -> None:
    """
    Merge src into dst, in place.

    Attributes of src are set on dst in name order. Every dst child block
    whose type appears among src's children is removed, whatever its labels,
    and src's children are appended instead.
    """
    dst_body, src_body = dst.body, src.body
    for name, attr in sorted(src_body.attributes().items()):
        dst_body.set_attribute_raw(name, attr.expr)

    src_blocks = src_body.blocks()
    replaced = {blk.type for blk in src_blocks}
    for blk in dst_body.blocks():
        if blk.type in replaced:
            dst_body.remove_block(blk)
    for blk in src_blocks:
        dst_body.append_block(copy.deepcopy(blk))


def search_block(parent: Body, type_: str, name: str) -> Block | None:
    """
    Find the block of a type that an overlay named ``name`` applies to.

    The block labeled exactly ``name`` wins, then the unlabeled one.

    Returns:
        The matching block, or None when parent has no block of that type

    Raises:
        ConfigError: If blocks of that type exist but none matches
    """
    candidates = [blk for blk in parent.blocks() if blk.type == type_]
    if not candidates:
        return None

    for blk in candidates:
        if blk.labels == [name]:
            return blk
    for blk in candidates:
        if not blk.labels:
            return blk
    raise ConfigError(f'the {type_} block "{name}" was not found in the given config')


def merge_env_block(dst: Body, block: Block, name: str) -> Block:
    """
    Merge a generated env block into the env block selected by name.

    When dst has no env block at all, ``env "<name>" {}`` is appended and
    the overlay is merged into it.

    Returns:
        The env block that received the overlay

    Raises:
        ConfigError: If env blocks exist but none matches name
    """
    env = search_block(dst, block.type, name)
    if env is None:
        logger.debug("No %s block in base config, creating %s.%s", block.type, block.type, name)
        env = dst.append_new_block(block.type, [name])
    merge_block(env, block)
    return env
