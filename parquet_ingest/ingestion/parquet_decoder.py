"""
Parquet decoder that rebuilds order records from column data.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pyarrow as pa
import pyarrow.parquet as pq
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from parquet_ingest.errors import (
    CoercionError,
    DecodeError,
    FormatMismatch,
    RowCountMismatch,
    SchemaError,
)

logger = logging.getLogger(__name__)

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


class OrderRecord(BaseModel):
    """One order row, with strict native types."""

    model_config = ConfigDict(frozen=True, strict=True)

    order_id: int = Field(ge=INT32_MIN, le=INT32_MAX)
    first_name: str
    last_name: str
    email: str
    quantity: int = Field(ge=INT32_MIN, le=INT32_MAX)
    order_total: float

    @field_validator('first_name', 'last_name', 'email', mode='before')
    @classmethod
    def decode_text(cls, v):
        # Binary columns come back as bytes
        if isinstance(v, bytes):
            return v.decode('utf-8')
        return v

    @field_validator('order_total', mode='before')
    @classmethod
    def validate_order_total(cls, v):
        if not isinstance(v, float):
            raise ValueError(f"expected a double, got {type(v).__name__}")
        return v

    def as_row(self) -> Tuple[int, str, str, str, int, float]:
        """Field values in target column order."""
        return (
            self.order_id,
            self.first_name,
            self.last_name,
            self.email,
            self.quantity,
            self.order_total,
        )


ORDER_FIELDS = tuple(OrderRecord.model_fields)


class AddressMode(str, Enum):
    BY_NAME = 'name'
    BY_INDEX = 'index'


@dataclass(frozen=True)
class ColumnAddress:
    """How one order field is located in the file schema."""

    field: str
    mode: AddressMode
    name: Optional[str] = None
    index: Optional[int] = None

    def __post_init__(self):
        if self.mode is AddressMode.BY_NAME and not self.name:
            raise ValueError(f"{self.field}: by-name address needs a column name")
        if self.mode is AddressMode.BY_INDEX and self.index is None:
            raise ValueError(f"{self.field}: by-index address needs a column index")

    @property
    def key(self) -> Union[str, int]:
        return self.name if self.mode is AddressMode.BY_NAME else self.index

    def describe(self) -> str:
        if self.mode is AddressMode.BY_NAME:
            return f"{self.field} (column '{self.name}')"
        return f"{self.field} (column #{self.index})"


# The writer of these files produced columns whose path lookup was unreliable
# for the integer and double fields, so those are read by position.
DEFAULT_COLUMN_RESOLUTION: Tuple[ColumnAddress, ...] = (
    ColumnAddress('order_id', AddressMode.BY_INDEX, index=0),
    ColumnAddress('first_name', AddressMode.BY_NAME, name='FirstName'),
    ColumnAddress('last_name', AddressMode.BY_NAME, name='LastName'),
    ColumnAddress('email', AddressMode.BY_NAME, name='Email'),
    ColumnAddress('quantity', AddressMode.BY_INDEX, index=4),
    ColumnAddress('order_total', AddressMode.BY_INDEX, index=5),
)


def _is_text(data_type: pa.DataType) -> bool:
    return (
        pa.types.is_string(data_type)
        or pa.types.is_large_string(data_type)
        or pa.types.is_binary(data_type)
        or pa.types.is_large_binary(data_type)
    )


# Physical column type each field must be stored as
COLUMN_TYPE_CHECKS = {
    'order_id': ('int32', pa.types.is_int32),
    'first_name': ('string or binary', _is_text),
    'last_name': ('string or binary', _is_text),
    'email': ('string or binary', _is_text),
    'quantity': ('int32', pa.types.is_int32),
    'order_total': ('double', pa.types.is_float64),
}


def assemble_records(columns: Mapping[str, Sequence], row_count: int) -> List[OrderRecord]:
    """Zip column sequences into order records.

    Every column must hold exactly ``row_count`` values. Record ``i`` is
    built only from index ``i`` of each column; any value that fails strict
    coercion rejects the whole batch.
    """
    missing = [field for field in ORDER_FIELDS if field not in columns]
    if missing:
        raise SchemaError(f"Missing column sequences: {missing}")

    for field in ORDER_FIELDS:
        if len(columns[field]) != row_count:
            raise RowCountMismatch(
                f"Column {field} has {len(columns[field])} values, expected {row_count}"
            )

    records = []
    for i in range(row_count):
        values = {field: columns[field][i] for field in ORDER_FIELDS}
        try:
            records.append(OrderRecord(**values))
        except ValidationError as e:
            raise CoercionError(f"Row {i}: {_summarize_validation_error(e)}") from e

    return records


def _summarize_validation_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        field = '.'.join(str(loc) for loc in detail['loc'])
        parts.append(f"{field}: {detail['msg']} (got {type(detail.get('input')).__name__})")
    return '; '.join(parts)


class ParquetDecoder:
    """Reads order records from a local Parquet file."""

    FILE_SUFFIX = '.parquet'

    def __init__(self, resolution: Sequence[ColumnAddress] = DEFAULT_COLUMN_RESOLUTION):
        self.resolution = tuple(resolution)

        fields = [address.field for address in self.resolution]
        if sorted(fields) != sorted(ORDER_FIELDS):
            raise ValueError(f"Column resolution must cover exactly {ORDER_FIELDS}, got {fields}")

    def validate_file_format(self, path: Path) -> None:
        """Reject files that are not named as Parquet files."""
        if path.suffix.lower() != self.FILE_SUFFIX:
            raise FormatMismatch(f"Only capable of parsing parquet files, got {path.name}")

    def resolve_columns(self, schema_names: Sequence[str]) -> Dict[str, Union[str, int]]:
        """Check every field address against the schema once, before reading.

        Returns a mapping of order field to the key used to read its column.
        """
        resolved = {}

        for address in self.resolution:
            if address.mode is AddressMode.BY_NAME:
                occurrences = list(schema_names).count(address.name)
                if occurrences == 0:
                    raise SchemaError(f"Column not found for {address.describe()}")
                if occurrences > 1:
                    raise SchemaError(f"Ambiguous column name for {address.describe()}")
            elif not 0 <= address.index < len(schema_names):
                raise SchemaError(
                    f"Column index out of range for {address.describe()}: "
                    f"file has {len(schema_names)} columns"
                )
            else:
                logger.debug(
                    f"{address.describe()} resolves to '{schema_names[address.index]}'"
                )

            resolved[address.field] = address.key

        return resolved

    def check_column_types(self, schema: pa.Schema, keys: Mapping[str, Union[str, int]]) -> None:
        """Reject the file when a resolved column has the wrong physical type.

        An INT64 quantity or a FLOAT total fails here even if every value
        would fit, before any column data is read.
        """
        for field, key in keys.items():
            expected, matches = COLUMN_TYPE_CHECKS[field]
            actual = schema.field(key).type
            if not matches(actual):
                raise CoercionError(f"Column {key!r} for {field} is {actual}, expected {expected}")

    def decode_file(self, path: Union[str, Path]) -> List[OrderRecord]:
        """Decode a Parquet file into order records in file row order."""
        path = Path(path)
        self.validate_file_format(path)

        if not path.is_file():
            raise DecodeError(f"File not found: {path}")

        try:
            parquet_file = pq.ParquetFile(str(path))
        except pa.ArrowException as e:
            raise FormatMismatch(f"{path.name} is not a readable parquet file: {e}") from e

        with parquet_file:
            row_count = parquet_file.metadata.num_rows
            schema_names = parquet_file.schema_arrow.names
            logger.info(f"Opened {path.name}: {row_count} rows, columns {schema_names}")

            keys = self.resolve_columns(schema_names)
            self.check_column_types(parquet_file.schema_arrow, keys)
            columns = self._read_columns(parquet_file, keys)

        records = assemble_records(columns, row_count)
        logger.info(f"Decoded {len(records)} order records from {path.name}")
        return records

    def _read_columns(
        self,
        parquet_file: pq.ParquetFile,
        keys: Mapping[str, Union[str, int]]
    ) -> Dict[str, list]:
        try:
            table = parquet_file.read(use_threads=False)
        except pa.ArrowException as e:
            raise DecodeError(f"Failed to read column data: {e}") from e

        columns = {}
        for field, key in keys.items():
            try:
                columns[field] = table.column(key).to_pylist()
            except (KeyError, IndexError) as e:
                raise SchemaError(f"Column {key!r} inaccessible for {field}: {e}") from e

        return columns
