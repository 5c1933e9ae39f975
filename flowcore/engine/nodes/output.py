import asyncio
import csv
import io
import json
from pathlib import Path
from typing import Any, Dict
from flowcore.engine.nodes.base import BaseNodeExecutor
from flowcore.engine.context import ExecutionContext
from flowcore.core.logging import get_logger
from flowcore.engine.nodes.registry import register_node

logger = get_logger("nodes.output")

@register_node("output", "display")
class DisplayNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        return inputs.get("input")

@register_node("output", "file_save")
class FileSaveNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        value = inputs.get("input")
        if self.services.file_save_dir:
            filename = inputs.get("filename") or context.resolve_template(self.config.filename)
            # Keep writes inside the configured directory
            path = Path(self.services.file_save_dir) / Path(filename).name
            await asyncio.to_thread(self._write, path, value)
            logger.info(f"Saved output of node {self.node_id} to {path}")
        return value

    def _write(self, path: Path, value: Any):
        path.parent.mkdir(parents=True, exist_ok=True)
        fmt = self.config.format
        if fmt == "json":
            text = json.dumps(value, ensure_ascii=False, indent=2, default=str)
        elif fmt == "csv":
            text = self._to_csv(value)
        else:
            text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
        path.write_text(text, encoding=self.config.encoding)

    @staticmethod
    def _to_csv(value: Any) -> str:
        rows = value if isinstance(value, list) else [value]
        buf = io.StringIO()
        if rows and all(isinstance(r, dict) for r in rows):
            fieldnames = list(dict.fromkeys(k for r in rows for k in r))
            writer = csv.DictWriter(buf, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)
        else:
            writer = csv.writer(buf)
            for row in rows:
                writer.writerow(row if isinstance(row, (list, tuple)) else [row])
        return buf.getvalue()
