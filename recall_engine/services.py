import pandas as pd
import json
import uuid
import logging
import threading
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple
import os

from .algorithms import (
    Algorithm,
    mastery_label,
    mastery_level,
    next_state,
    parse_algorithm,
    resolve_algorithm,
)
from .bandit import (
    SEED_QUALITY,
    apply_feedback,
    auto_quality_score,
    default_variants,
    parse_generated_questions,
    render_prompt,
    select_best,
    variant_stats,
)
from .config import EngineConfig
from .ledger import RetentionLedger
from .models import (
    AlgorithmStats,
    GenerationPrompt,
    ItemState,
    QualityRecord,
    RetentionSample,
    StudyRecord,
    VariantRecord,
    VariantStats,
)

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

ITEMS_FILE = "items.csv"
SAMPLES_FILE = "samples.csv"
VARIANTS_FILE = "variants.csv"
QUALITY_FILE = "quality.csv"

TEXT_COLUMNS = {"id": str, "item_id": str, "variant_id": str, "question": str, "answer": str,
                "name": str, "template": str, "algorithm": str, "study_history": str}


class RecallService:
    """Owns items, the retention ledger and the generation variants.

    Every mutation runs under one lock and replaces whole records, so
    concurrent requests never see a half-applied review or selection.
    """

    def __init__(self, config: Optional[EngineConfig] = None, clock: Callable[[], datetime] = datetime.now):
        self.config = config or EngineConfig()
        self.clock = clock
        self.items: Dict[str, ItemState] = {}
        self.ledger = RetentionLedger(self.config.ledger_capacity)
        self.variants: List[VariantRecord] = default_variants()
        self.quality_records: Dict[str, QualityRecord] = {}
        self._lock = threading.RLock()

        self.default_algorithm = parse_algorithm(self.config.default_algorithm)
        if self.default_algorithm is None:
            logging.warning(f"Unknown default algorithm {self.config.default_algorithm!r}; using fsrs")
            self.default_algorithm = Algorithm.FSRS

    # --- Persistence ---

    def _path(self, name: str) -> str:
        return os.path.join(self.config.data_dir, name)

    def _read_table(self, name: str) -> List[dict]:
        path = self._path(name)
        if not os.path.exists(path):
            return []
        try:
            df = pd.read_csv(path, encoding='utf-8', dtype=TEXT_COLUMNS,
                             keep_default_na=False, na_values=[""], float_precision="round_trip")
        except (OSError, ValueError) as e:
            logging.error(f"Error loading {path}: {e}")
            return []
        df = df.astype(object).where(pd.notna(df), None)
        # Drop empty cells so model defaults apply
        return [{k: v for k, v in row.items() if v is not None} for row in df.to_dict(orient="records")]

    def _parse_rows(self, name: str, rows: List[dict], parse: Callable[[dict], object]) -> list:
        parsed = []
        for row in rows:
            try:
                parsed.append(parse(row))
            except ValueError as e:
                logging.warning(f"Skipping malformed row in {name}: {e}")
        return parsed

    @staticmethod
    def _parse_item(row: dict) -> ItemState:
        history = json.loads(row.pop("study_history", None) or "[]")
        if not isinstance(history, list):
            raise ValueError(f"study_history must be a list, got {type(history).__name__}")
        return ItemState(**row, study_history=[StudyRecord.model_validate(r) for r in history])

    def load_data(self) -> bool:
        """Loads all tables from the data directory. Missing tables keep their defaults."""
        if not os.path.isdir(self.config.data_dir):
            logging.info(f"No data directory at {self.config.data_dir}; starting empty")
            return False

        with self._lock:
            items = self._parse_rows(ITEMS_FILE, self._read_table(ITEMS_FILE), self._parse_item)
            self.items = {item.id: item for item in items}

            samples = self._parse_rows(SAMPLES_FILE, self._read_table(SAMPLES_FILE), RetentionSample.model_validate)
            self.ledger = RetentionLedger(self.config.ledger_capacity, samples)

            variants = self._parse_rows(VARIANTS_FILE, self._read_table(VARIANTS_FILE), VariantRecord.model_validate)
            if variants:
                self.variants = variants

            records = self._parse_rows(QUALITY_FILE, self._read_table(QUALITY_FILE), QualityRecord.model_validate)
            self.quality_records = {r.item_id: r for r in records}

        logging.info(f"Loaded {len(self.items)} items, {len(self.ledger)} samples, {len(self.variants)} variants")
        return True

    def save_data(self):
        """Writes all tables to CSV."""
        with self._lock:
            os.makedirs(self.config.data_dir, exist_ok=True)

            item_rows = []
            for item in self.items.values():
                row = item.model_dump(mode="json", exclude={"study_history"})
                row["study_history"] = json.dumps([r.model_dump(mode="json") for r in item.study_history])
                item_rows.append(row)
            tables = {
                ITEMS_FILE: (item_rows, list(ItemState.model_fields)),
                SAMPLES_FILE: ([s.model_dump(mode="json") for s in self.ledger.samples()], list(RetentionSample.model_fields)),
                VARIANTS_FILE: ([v.model_dump() for v in self.variants], list(VariantRecord.model_fields)),
                QUALITY_FILE: ([r.model_dump() for r in self.quality_records.values()], list(QualityRecord.model_fields)),
            }
            for name, (rows, columns) in tables.items():
                pd.DataFrame(rows, columns=columns).to_csv(self._path(name), index=False, encoding='utf-8')

    # --- Items ---

    def add_item(self, question: str, answer: str, is_generated: bool = False) -> ItemState:
        item = ItemState(id=str(uuid.uuid4()), question=question, answer=answer, is_generated=is_generated)
        with self._lock:
            self.items[item.id] = item
            self.save_data()
        return item

    def get_item(self, item_id: str) -> Optional[ItemState]:
        return self.items.get(item_id)

    def delete_item(self, item_id: str) -> bool:
        with self._lock:
            if item_id not in self.items:
                return False
            del self.items[item_id]
            self.quality_records.pop(item_id, None)
            self.save_data()
        return True

    def due_items(self, today: Optional[date] = None) -> List[ItemState]:
        """Reviewed items whose due date has arrived, earliest first."""
        today = today or self.clock().date()
        due = [item for item in self.items.values() if item.due_date and item.due_date <= today]
        return sorted(due, key=lambda item: item.due_date)

    # --- Review scheduling ---

    def _algorithm_for(self, item: ItemState) -> Tuple[ItemState, Algorithm]:
        if item.algorithm is None:
            algorithm = resolve_algorithm(item.id, self.config.experiment_enabled, self.default_algorithm)
            return item.model_copy(update={"algorithm": algorithm.value}), algorithm

        algorithm = parse_algorithm(item.algorithm)
        if algorithm is None:
            logging.warning(f"Item {item.id} has unknown algorithm {item.algorithm!r}; using {self.default_algorithm.value}")
            algorithm = self.default_algorithm
        return item, algorithm

    def _review_locked(self, item: ItemState, performance: int) -> ItemState:
        # Caller holds self._lock and passes the stored copy of the item
        now = self.clock()
        item, algorithm = self._algorithm_for(item)
        result, retention = next_state(algorithm, item, performance, now)

        self.ledger.append(RetentionSample(
            algorithm=algorithm.value,
            item_id=item.id,
            performance=performance,
            retention=retention,
            timestamp=now,
        ))

        updated = item.model_copy(update={
            **result.model_dump(),
            "algorithm": algorithm.value,
            "study_history": item.study_history + [StudyRecord(performance=performance, timestamp=now)],
        })
        self.items[updated.id] = updated
        self.save_data()
        return updated

    def review_item(self, item: ItemState, performance: int) -> Optional[ItemState]:
        """Schedules the next review of a stored item and logs a retention sample.

        The stored copy is re-read under the lock, so concurrent reviews stack
        instead of overwriting each other. Returns None if the item was deleted.
        """
        return self.record_review(item.id, performance)

    def record_review(self, item_id: str, performance: int) -> Optional[ItemState]:
        with self._lock:
            item = self.items.get(item_id)
            if item is None:
                return None
            return self._review_locked(item, performance)

    def get_mastery(self, item_id: str) -> Optional[Tuple[int, str]]:
        item = self.items.get(item_id)
        if item is None:
            return None
        level = mastery_level(item)
        return level, mastery_label(level)

    def compare_algorithms(self) -> Dict[str, AlgorithmStats]:
        return self.ledger.compare()

    # --- Generation variants ---

    def _variant_index(self, variant_id: str) -> Optional[int]:
        for i, variant in enumerate(self.variants):
            if variant.id == variant_id:
                return i
        return None

    def get_variant(self, variant_id: str) -> Optional[VariantRecord]:
        idx = self._variant_index(variant_id)
        return None if idx is None else self.variants[idx]

    def select_generation_variant(self) -> Optional[str]:
        """Chooses a variant by UCB score and counts the use."""
        with self._lock:
            chosen, self.variants = select_best(self.variants)
            if chosen is None:
                logging.warning("No generation variants available")
                return None
            logging.info(f"Selected generation variant {chosen}")
            self.save_data()
        return chosen

    def record_variant_usage(self, variant_id: str) -> bool:
        with self._lock:
            idx = self._variant_index(variant_id)
            if idx is None:
                return False
            variant = self.variants[idx]
            self.variants[idx] = variant.model_copy(update={"usage_count": variant.usage_count + 1})
            self.save_data()
        return True

    def prepare_generation(self, notes: str, difficulty: str = "mixed") -> Optional[GenerationPrompt]:
        with self._lock:
            variant_id = self.select_generation_variant()
            if variant_id is None:
                return None
            variant = self.get_variant(variant_id)
        return GenerationPrompt(
            variant_id=variant.id,
            variant_name=variant.name,
            prompt=render_prompt(variant, notes, difficulty),
        )

    def complete_generation(self, variant_id: str, generated_text: str) -> Optional[List[ItemState]]:
        """Turns generator output into items, each linked back to its variant."""
        questions = parse_generated_questions(generated_text)
        with self._lock:
            if self._variant_index(variant_id) is None:
                return None
            created = []
            for question in questions:
                item = ItemState(
                    id=str(uuid.uuid4()),
                    question=question["question"],
                    answer=question["answer"],
                    is_generated=True,
                )
                self.items[item.id] = item
                self.quality_records[item.id] = QualityRecord(
                    variant_id=variant_id,
                    item_id=item.id,
                    auto_quality_score=auto_quality_score(question),
                )
                created.append(item)
            self.save_data()
        logging.info(f"Stored {len(created)} generated items from variant {variant_id}")
        return created

    def record_feedback(self, item_id: str, feedback: str) -> Optional[VariantRecord]:
        """Credits a learner's rating of a generated item to the variant that produced it."""
        with self._lock:
            record = self.quality_records.get(item_id)
            if record is None:
                logging.warning(f"No quality record for item {item_id}; feedback ignored")
                return None
            idx = self._variant_index(record.variant_id)
            if idx is None:
                logging.warning(f"Variant {record.variant_id} for item {item_id} no longer exists")
                return None

            # Repeated feedback counts again
            updated = apply_feedback(self.variants[idx], feedback)
            self.variants[idx] = updated
            self.quality_records[item_id] = record.model_copy(update={"feedback": feedback})
            self.save_data()
        return updated

    def list_variants(self) -> List[VariantRecord]:
        return list(self.variants)

    def get_variant_stats(self) -> List[VariantStats]:
        return variant_stats(self.variants)

    @staticmethod
    def _check_variant_text(name: str, template: str):
        if not name.strip() or not template.strip():
            raise ValueError("Variant name and template cannot be empty")

    def add_variant(self, name: str, template: str) -> VariantRecord:
        self._check_variant_text(name, template)
        with self._lock:
            variant_id = f"custom-{int(self.clock().timestamp() * 1000)}"
            while self._variant_index(variant_id) is not None:
                variant_id += "-1"
            variant = VariantRecord(id=variant_id, name=name.strip(), template=template, quality_score=SEED_QUALITY)
            self.variants = self.variants + [variant]
            self.save_data()
        return variant

    def update_variant(self, variant_id: str, name: str, template: str) -> Optional[VariantRecord]:
        self._check_variant_text(name, template)
        with self._lock:
            idx = self._variant_index(variant_id)
            if idx is None:
                return None
            updated = self.variants[idx].model_copy(update={"name": name.strip(), "template": template})
            self.variants[idx] = updated
            self.save_data()
        return updated

    def delete_variant(self, variant_id: str) -> bool:
        with self._lock:
            idx = self._variant_index(variant_id)
            if idx is None:
                return False
            removed = self.variants[idx]
            remaining = self.variants[:idx] + self.variants[idx + 1:]
            if removed.is_default and remaining:
                remaining[0] = remaining[0].model_copy(update={"is_default": True})
            self.variants = remaining
            self.save_data()
        return True

    def set_default_variant(self, variant_id: str) -> bool:
        with self._lock:
            if self._variant_index(variant_id) is None:
                return False
            self.variants = [v.model_copy(update={"is_default": v.id == variant_id}) for v in self.variants]
            self.save_data()
        return True
