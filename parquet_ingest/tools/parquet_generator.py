"""
Parquet generator for sample order files.
"""

import random
import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pyarrow as pa
import pyarrow.parquet as pq

FIRST_NAMES = ["Ada", "Grace", "Alan", "Edsger", "Barbara", "Donald", "Frances", "Ken"]
LAST_NAMES = ["Lovelace", "Hopper", "Turing", "Dijkstra", "Liskov", "Knuth", "Allen", "Thompson"]
EMAIL_DOMAINS = ["example.com", "example.org", "mail.test"]

# Column layout written by the upstream exporter
ORDER_SCHEMA = pa.schema([
    ('id', pa.int32()),
    ('FirstName', pa.string()),
    ('LastName', pa.string()),
    ('Email', pa.string()),
    ('qty', pa.int32()),
    ('total', pa.float64()),
])

OrderTuple = Tuple[int, str, str, str, int, float]


def write_orders(
    output_path: Path,
    orders: Sequence[OrderTuple],
    schema: pa.Schema = ORDER_SCHEMA
) -> Path:
    """Write order tuples as a Parquet file with one column per field."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    columns = list(zip(*orders)) if orders else [[] for _ in schema]
    table = pa.Table.from_arrays(
        [pa.array(list(values), type=field.type) for values, field in zip(columns, schema)],
        schema=schema,
    )
    pq.write_table(table, output_path)
    return output_path


def write_columns(output_path: Path, columns: Dict[str, pa.Array]) -> Path:
    """Write arbitrary named columns, for files with unusual layouts."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    pq.write_table(pa.table(columns), output_path)
    return output_path


class ParquetGenerator:
    """Generates realistic order files for testing."""

    def __init__(self, seed: Optional[int] = None, first_order_id: int = 1000):
        self.random = random.Random(seed)
        self.order_counter = first_order_id

    def generate_order(self) -> OrderTuple:
        first_name = self.random.choice(FIRST_NAMES)
        last_name = self.random.choice(LAST_NAMES)
        email = f"{first_name}.{last_name}@{self.random.choice(EMAIL_DOMAINS)}".lower()
        quantity = self.random.randint(1, 10)
        order_total = round(quantity * self.random.uniform(2.5, 99.0), 2)

        order = (self.order_counter, first_name, last_name, email, quantity, order_total)
        self.order_counter += 1
        return order

    def generate_orders(self, count: int) -> List[OrderTuple]:
        return [self.generate_order() for _ in range(count)]

    def generate_file(self, output_path: Path, num_orders: int = 100) -> Dict[str, Any]:
        """Generate a Parquet file with simulated orders."""
        orders = self.generate_orders(num_orders)
        write_orders(output_path, orders)
        return {
            'path': str(output_path),
            'rows': len(orders),
            'total_value': round(sum(order[5] for order in orders), 2),
        }

    def generate_test_scenarios(self, output_dir: Path) -> List[Path]:
        """Generate one valid file and several files the loader must reject."""
        output_dir = Path(output_dir)
        written = []

        written.append(write_orders(output_dir / "valid_orders.parquet", self.generate_orders(50)))

        # Quantity stored as text
        orders = self.generate_orders(10)
        text_quantity = [(*order[:4], str(order[4]), order[5]) for order in orders]
        written.append(write_orders(
            output_dir / "text_quantity.parquet",
            text_quantity,
            schema=ORDER_SCHEMA.set(4, pa.field('qty', pa.string())),
        ))

        # Missing email values
        orders = [(*order[:3], None, *order[4:]) for order in self.generate_orders(10)]
        written.append(write_orders(output_dir / "null_email.parquet", orders))

        # No Email column at all
        orders = self.generate_orders(10)
        written.append(write_columns(output_dir / "missing_email_column.parquet", {
            'id': pa.array([o[0] for o in orders], type=pa.int32()),
            'FirstName': pa.array([o[1] for o in orders]),
            'LastName': pa.array([o[2] for o in orders]),
            'qty': pa.array([o[4] for o in orders], type=pa.int32()),
            'total': pa.array([o[5] for o in orders], type=pa.float64()),
        }))

        # Right content, wrong extension
        csv_path = output_dir / "orders.csv"
        csv_path.write_text("id,FirstName\n1,Ada\n", encoding="utf-8")
        written.append(csv_path)

        return written


def main():
    """Main entry point for sample file generation."""
    parser = argparse.ArgumentParser(description='Generate Parquet order files for testing')
    parser.add_argument('--output', '-o', required=True, help='Output Parquet file path')
    parser.add_argument('--count', '-c', type=int, default=100, help='Number of orders to generate')
    parser.add_argument('--seed', type=int, help='Random seed for repeatable output')
    parser.add_argument('--scenarios', '-s', action='store_true', help='Generate test scenarios')

    args = parser.parse_args()

    generator = ParquetGenerator(seed=args.seed)

    if args.scenarios:
        for path in generator.generate_test_scenarios(Path(args.output).parent):
            print(f"Wrote {path}")
    else:
        summary = generator.generate_file(Path(args.output), args.count)
        print(f"Generated {summary['rows']} orders in {summary['path']}")


if __name__ == "__main__":
    main()
