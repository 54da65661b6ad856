"""
Undo and redo management for the tile map editor.

Two engines share one action set (SET, UNDO, REDO, RESET, START_BATCH,
END_BATCH):

- ChunkedMapUndo records only the chunks an edit touched, as before/after
  patches, so large maps are never copied whole.
- UndoableHistory snapshots whole values and is meant for small documents
  such as tileset metadata.
"""

import copy
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

import numpy as np

from .chunk_storage import apply_chunk_tiles, extract_chunk_tiles
from .config import CONFIG
from .models import ChunkPatch, ChunkRef, MapData, MapPatch

logger = logging.getLogger(__name__)


class ActionType(Enum):
    SET = "SET"
    UNDO = "UNDO"
    REDO = "REDO"
    RESET = "RESET"
    START_BATCH = "START_BATCH"
    END_BATCH = "END_BATCH"


@dataclass
class HistoryAction:
    type: ActionType
    payload: Any = None
    affected_chunks: Optional[List[ChunkRef]] = None
    old_chunk_data: Optional[Mapping[ChunkRef, np.ndarray]] = None


def _trim(entries: list, limit: int) -> list:
    return entries[-limit:] if limit > 0 else []


# Chunked map history


@dataclass
class ChunkedMapState:
    present: MapData
    past: List[MapPatch] = field(default_factory=list)
    future: List[MapPatch] = field(default_factory=list)
    is_batching: bool = False
    batch_patches: List[ChunkPatch] = field(default_factory=list)
    last_affected_chunks: Optional[List[ChunkRef]] = None


def collect_chunk_refs(*maps: MapData) -> List[ChunkRef]:
    """Every chunk present in any layer of the given maps."""
    refs: Dict[ChunkRef, None] = {}
    for map_data in maps:
        for layer in map_data.layers:
            if layer.is_legacy:
                chunks_x = -(-layer.width // layer.chunk_size)
                chunks_y = -(-layer.height // layer.chunk_size)
                for cy in range(chunks_y):
                    for cx in range(chunks_x):
                        refs[ChunkRef(layer.id, cx, cy)] = None
            else:
                for cx, cy in layer.chunks:
                    refs[ChunkRef(layer.id, cx, cy)] = None
    return list(refs)


def read_chunks(map_data: MapData, refs: Iterable[ChunkRef]) -> Dict[ChunkRef, np.ndarray]:
    """Copy the current tiles of each referenced chunk. Unknown layers are skipped."""
    data = {}
    for ref in refs:
        layer = map_data.get_layer(ref.layer_id)
        if layer is None:
            continue
        data[ref] = extract_chunk_tiles(layer, ref.chunk_x, ref.chunk_y)
    return data


def create_patches(
    new_map: MapData,
    affected_chunks: Optional[Sequence[ChunkRef]],
    old_chunk_data: Optional[Mapping[ChunkRef, np.ndarray]],
) -> List[ChunkPatch]:
    """Diff the affected chunks of new_map against their captured old tiles."""
    if not affected_chunks:
        logger.warning("No affected chunks specified, skipping patch creation")
        return []
    if not old_chunk_data:
        logger.warning("No old chunk data, skipping patch creation")
        return []

    patches = []
    for ref in dict.fromkeys(affected_chunks):
        layer = new_map.get_layer(ref.layer_id)
        old_tiles = old_chunk_data.get(ref)
        if layer is None or old_tiles is None:
            continue

        new_tiles = extract_chunk_tiles(layer, ref.chunk_x, ref.chunk_y)
        if np.array_equal(old_tiles, new_tiles):
            continue

        patches.append(
            ChunkPatch(
                layer_id=ref.layer_id,
                chunk_x=ref.chunk_x,
                chunk_y=ref.chunk_y,
                chunk_size=layer.chunk_size,
                old_tiles=old_tiles,
                new_tiles=new_tiles,
            )
        )

    logger.debug(
        "Created %d patches for %d affected chunks", len(patches), len(affected_chunks)
    )
    return patches


def merge_patches(
    existing: Sequence[ChunkPatch], incoming: Sequence[ChunkPatch]
) -> List[ChunkPatch]:
    """Fold incoming patches into existing ones, one patch per chunk.

    A chunk keeps its earliest old tiles and takes the newest new tiles.
    """
    merged = list(existing)
    index = {patch.ref: i for i, patch in enumerate(merged)}
    for patch in incoming:
        i = index.get(patch.ref)
        if i is None:
            index[patch.ref] = len(merged)
            merged.append(patch)
        else:
            merged[i] = replace(merged[i], new_tiles=patch.new_tiles)
    return merged


def apply_patch(map_data: MapData, patch: MapPatch, reverse: bool) -> MapData:
    """Write a patch's old (reverse) or new tiles into the map.

    Returns a new MapData and new Layer objects; tile arrays are shared with
    the input and mutated in place.
    """
    new_map = replace(
        map_data, layers=[replace(layer, chunks=dict(layer.chunks)) for layer in map_data.layers]
    )

    for chunk_patch in patch.chunks:
        layer = new_map.get_layer(chunk_patch.layer_id)
        if layer is None:
            continue
        tiles = chunk_patch.old_tiles if reverse else chunk_patch.new_tiles
        apply_chunk_tiles(layer, tiles, chunk_patch.chunk_x, chunk_patch.chunk_y)

    return new_map


def _commit(state: ChunkedMapState, patches: List[ChunkPatch], limit: int, **changes):
    entry = MapPatch(chunks=patches, timestamp=time.time())
    return replace(
        state, past=_trim(state.past + [entry], limit), future=[], **changes
    )


def chunked_map_reducer(
    state: ChunkedMapState,
    action: HistoryAction,
    history_limit: int = CONFIG.history_limit,
) -> ChunkedMapState:
    """Single state transition of the chunked history."""
    if action.type is ActionType.SET:
        patches = create_patches(
            action.payload, action.affected_chunks, action.old_chunk_data
        )

        if state.is_batching:
            return replace(
                state,
                present=action.payload,
                batch_patches=merge_patches(state.batch_patches, patches),
            )

        if not patches:
            return replace(state, present=action.payload)

        logger.debug("Adding %d patches to history", len(patches))
        return _commit(state, patches, history_limit, present=action.payload)

    if action.type is ActionType.UNDO:
        if not state.past:
            return state

        patch = state.past[-1]
        logger.debug("Undoing patch with %d chunks", len(patch.chunks))
        return replace(
            state,
            past=state.past[:-1],
            present=apply_patch(state.present, patch, reverse=True),
            future=[patch] + state.future,
            last_affected_chunks=[c.ref for c in patch.chunks],
        )

    if action.type is ActionType.REDO:
        if not state.future:
            return state

        patch = state.future[0]
        logger.debug("Redoing patch with %d chunks", len(patch.chunks))
        return replace(
            state,
            past=_trim(state.past + [patch], history_limit),
            present=apply_patch(state.present, patch, reverse=False),
            future=state.future[1:],
            last_affected_chunks=[c.ref for c in patch.chunks],
        )

    if action.type is ActionType.START_BATCH:
        return replace(state, is_batching=True, batch_patches=[])

    if action.type is ActionType.END_BATCH:
        if not state.is_batching:
            return state

        # A stroke that painted and then restored a chunk leaves nothing to undo
        patches = [
            p for p in state.batch_patches if not np.array_equal(p.old_tiles, p.new_tiles)
        ]
        if not patches:
            return replace(state, is_batching=False, batch_patches=[])

        logger.debug("Committing batch of %d patches", len(patches))
        return _commit(
            state, patches, history_limit, is_batching=False, batch_patches=[]
        )

    if action.type is ActionType.RESET:
        # An open batch stays open (drag in progress) but loses its patches
        return ChunkedMapState(present=action.payload, is_batching=state.is_batching)

    return state


class ChunkSnapshot:
    """Read-only copies of the chunks an edit is about to touch.

    Produced by ChunkedMapUndo.snapshot() before any in-place mutation and
    consumed once by ChunkedMapUndo.commit().
    """

    def __init__(self, owner: "ChunkedMapUndo", refs: Sequence[ChunkRef], data):
        self.owner = owner
        self.refs = tuple(dict.fromkeys(refs))
        for tiles in data.values():
            tiles.flags.writeable = False
        self.data: Mapping[ChunkRef, np.ndarray] = MappingProxyType(data)
        self.committed = False


MapUpdater = Callable[[MapData], MapData]


class ChunkedMapUndo:
    """Chunk-diffing undo/redo for large maps."""

    def __init__(self, initial: MapData, history_limit: int = CONFIG.history_limit):
        self.history_limit = history_limit
        self.state = ChunkedMapState(present=initial)

    def dispatch(self, action: HistoryAction) -> ChunkedMapState:
        self.state = chunked_map_reducer(self.state, action, self.history_limit)
        return self.state

    @property
    def present(self) -> MapData:
        return self.state.present

    @property
    def past(self) -> List[MapPatch]:
        return self.state.past

    @property
    def future(self) -> List[MapPatch]:
        return self.state.future

    @property
    def can_undo(self) -> bool:
        return len(self.state.past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self.state.future) > 0

    @property
    def is_batching(self) -> bool:
        return self.state.is_batching

    @property
    def last_affected_chunks(self) -> Optional[List[ChunkRef]]:
        return self.state.last_affected_chunks

    def snapshot(self, affected_chunks: Iterable[ChunkRef]) -> ChunkSnapshot:
        refs = list(affected_chunks)
        return ChunkSnapshot(self, refs, read_chunks(self.present, refs))

    def commit(self, snapshot: ChunkSnapshot, new_map: Optional[MapData] = None):
        """Record the edit captured by snapshot. new_map defaults to present."""
        if snapshot.owner is not self:
            raise RuntimeError("Snapshot belongs to a different history")
        if snapshot.committed:
            raise RuntimeError("Snapshot has already been committed")
        snapshot.committed = True

        self.dispatch(
            HistoryAction(
                ActionType.SET,
                payload=self.present if new_map is None else new_map,
                affected_chunks=list(snapshot.refs),
                old_chunk_data=snapshot.data,
            )
        )

    def set_state(
        self,
        new_state: Union[MapData, MapUpdater],
        affected_chunks: Optional[Iterable[ChunkRef]] = None,
    ):
        """Replace the present map and record the difference.

        An updater is called with the present map and may mutate it in
        place; the affected chunks are copied before it runs. A plain map
        with no affected chunks is diffed against present chunk by chunk.
        """
        if callable(new_state):
            snapshot = self.snapshot(affected_chunks or [])
            self.commit(snapshot, new_state(self.present))
            return

        if affected_chunks is None:
            affected_chunks = collect_chunk_refs(self.present, new_state)
        self.commit(self.snapshot(affected_chunks), new_state)

    @contextmanager
    def edit(self, affected_chunks: Iterable[ChunkRef]):
        """Mutate the present map in place as one recorded edit."""
        snapshot = self.snapshot(affected_chunks)
        try:
            yield self.present
        finally:
            self.commit(snapshot)

    def undo(self):
        self.dispatch(HistoryAction(ActionType.UNDO))

    def redo(self):
        self.dispatch(HistoryAction(ActionType.REDO))

    def start_batch(self):
        self.dispatch(HistoryAction(ActionType.START_BATCH))

    def end_batch(self):
        self.dispatch(HistoryAction(ActionType.END_BATCH))

    @contextmanager
    def batch(self):
        """Group every edit made inside the block into one undo step.

        Inside an already open batch this joins it instead of starting anew.
        """
        if self.is_batching:
            yield self
            return

        self.start_batch()
        try:
            yield self
        finally:
            self.end_batch()

    def reset(self, new_map: MapData):
        self.dispatch(HistoryAction(ActionType.RESET, payload=new_map))


# Whole-value history


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality that also understands numpy arrays."""
    if a is b:
        return True
    if a is None or b is None:
        return False

    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        return np.array_equal(a, b)

    if is_dataclass(a) and not isinstance(a, type):
        if type(a) is not type(b):
            return False
        return all(
            deep_equal(getattr(a, f.name), getattr(b, f.name)) for f in fields(a)
        )

    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if type(a) is not type(b) or len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    return a == b


@dataclass
class UndoableState:
    present: Any
    past: List[Any] = field(default_factory=list)
    future: List[Any] = field(default_factory=list)
    is_batching: bool = False
    batch_start: Any = None


def undoable_reducer(
    state: UndoableState,
    action: HistoryAction,
    history_limit: int = CONFIG.history_limit,
) -> UndoableState:
    """Single state transition of the whole-value history."""
    if action.type is ActionType.SET:
        if deep_equal(state.present, action.payload):
            return state

        if state.is_batching:
            return replace(state, present=action.payload)

        return UndoableState(
            present=action.payload,
            past=_trim(state.past + [state.present], history_limit),
        )

    if action.type is ActionType.UNDO:
        if not state.past:
            return state
        return UndoableState(
            present=state.past[-1],
            past=state.past[:-1],
            future=[state.present] + state.future,
        )

    if action.type is ActionType.REDO:
        if not state.future:
            return state
        return UndoableState(
            present=state.future[0],
            past=_trim(state.past + [state.present], history_limit),
            future=state.future[1:],
        )

    if action.type is ActionType.START_BATCH:
        return replace(state, is_batching=True, batch_start=state.present)

    if action.type is ActionType.END_BATCH:
        if not state.is_batching:
            return state
        if deep_equal(state.batch_start, state.present):
            return replace(state, is_batching=False, batch_start=None)
        return UndoableState(
            present=state.present,
            past=_trim(state.past + [state.batch_start], history_limit),
        )

    if action.type is ActionType.RESET:
        return UndoableState(
            present=action.payload,
            is_batching=state.is_batching,
            batch_start=action.payload if state.is_batching else None,
        )

    return state


class UndoableHistory:
    """Whole-value undo/redo for small documents."""

    def __init__(self, initial: Any, history_limit: int = CONFIG.history_limit):
        self.history_limit = history_limit
        self.state = UndoableState(present=copy.deepcopy(initial))

    def dispatch(self, action: HistoryAction) -> UndoableState:
        self.state = undoable_reducer(self.state, action, self.history_limit)
        return self.state

    @property
    def present(self) -> Any:
        return self.state.present

    @property
    def can_undo(self) -> bool:
        return len(self.state.past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self.state.future) > 0

    def set_state(self, value: Any):
        # History keeps private copies
        self.dispatch(HistoryAction(ActionType.SET, payload=copy.deepcopy(value)))

    def undo(self):
        self.dispatch(HistoryAction(ActionType.UNDO))

    def redo(self):
        self.dispatch(HistoryAction(ActionType.REDO))

    def start_batch(self):
        self.dispatch(HistoryAction(ActionType.START_BATCH))

    def end_batch(self):
        self.dispatch(HistoryAction(ActionType.END_BATCH))

    @contextmanager
    def batch(self):
        if self.state.is_batching:
            yield self
            return

        self.start_batch()
        try:
            yield self
        finally:
            self.end_batch()

    def reset(self, value: Any):
        self.dispatch(HistoryAction(ActionType.RESET, payload=copy.deepcopy(value)))
