import json
from typing import Any, Dict, List
from flowcore.engine.nodes.base import BaseNodeExecutor
from flowcore.engine.context import ExecutionContext
from flowcore.engine.nodes.registry import register_node

@register_node("tool", "http_request")
class HttpRequestNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        url = inputs.get("url") or context.resolve_template(self.config.url)
        if not url:
            raise ValueError("HTTP request requires a URL")

        method = self.config.method.upper()
        headers = {k: context.resolve_template(v) for k, v in self.config.headers.items()}
        data = inputs.get("data")
        json_data = data if data is not None and method != "GET" else None
        params = data if isinstance(data, dict) and method == "GET" else None

        client = await self.services.http_client()
        # Transport errors (httpx.HTTPError) propagate as node failures
        response = await client.request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=json_data,
            timeout=self.config.timeout / 1000,
        )
        if self.config.raise_for_status:
            response.raise_for_status()

        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError):
            body = response.text

        return {
            "status_code": response.status_code,
            "headers": dict(response.headers),
            "body": body,
        }

@register_node("tool", "email_send")
class EmailSendNodeExecutor(BaseNodeExecutor):
    async def execute(self, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        missing = [port for port in ("to", "subject", "content") if not inputs.get(port)]
        if missing:
            raise ValueError(f"Email send is missing required inputs: {', '.join(missing)}")

        to = inputs["to"]
        recipients: List[str] = to if isinstance(to, list) else [r.strip() for r in str(to).split(",") if r.strip()]
        auth = self.config.auth
        return await self.services.send_email(
            to=recipients,
            subject=context.resolve_template(str(inputs["subject"])),
            content=str(inputs["content"]),
            host=self.config.smtp_host or None,
            port=self.config.smtp_port,
            username=auth.user or None,
            password=auth.password or None,
            sender=self.config.sender,
            use_tls=self.config.secure,
        )
