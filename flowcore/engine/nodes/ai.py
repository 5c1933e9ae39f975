import json
import re
from typing import Any, Dict
from flowcore.engine.nodes.base import BaseNodeExecutor
from flowcore.engine.context import ExecutionContext
from flowcore.core.logging import get_logger
from flowcore.engine.nodes.registry import register_node

logger = get_logger("nodes.ai")

ANALYSIS_INSTRUCTIONS = {
    "sentiment": 'Return JSON: {"sentiment": "positive|neutral|negative", "confidence": 0.0-1.0}',
    "keywords": 'Return JSON: {"keywords": ["..."]}',
    "summary": 'Return JSON: {"summary": "..."}',
    "classification": 'Return JSON: {"category": "...", "confidence": 0.0-1.0}',
}

@register_node("ai", "text_generation")
class TextGenerationNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        prompt = inputs.get("prompt") or context.resolve_template(self.config.prompt)
        if not prompt:
            raise ValueError("Text generation requires a prompt (connect the 'prompt' port or set config.prompt)")

        user_prompt = str(prompt)
        extra = inputs.get("context")
        if extra:
            user_prompt = f"{extra}\n\n{user_prompt}"

        system_prompt = context.resolve_template(self.config.system_prompt) if self.config.system_prompt else None
        return await self.services.chat_completion(
            provider=self.config.provider,
            model=self.config.model,
            user_prompt=user_prompt,
            system_prompt=system_prompt,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

@register_node("ai", "text_analysis")
class TextAnalysisNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        text = inputs.get("input")
        if not text:
            raise ValueError("Text analysis requires a text input on the 'input' port")

        analysis_type = self.config.analysis_type
        prompt = f"""
Analyse the following text ({analysis_type}, language: {self.config.language}).
{ANALYSIS_INSTRUCTIONS[analysis_type]}

Text: {text}
"""
        response = await self.services.chat_completion(
            provider=self.config.provider,
            model=self.config.model,
            user_prompt=prompt,
            temperature=0,
        )

        result: Dict[str, Any] = {"analysis_type": analysis_type}
        # Look for JSON in response
        match = re.search(r"\{.*\}", response or "", re.DOTALL)
        if match:
            try:
                result.update(json.loads(match.group(0)))
                return result
            except json.JSONDecodeError as e:
                logger.warning(f"Error parsing analysis response for node {self.node_id}: {e}")
        result["raw"] = response
        return result
