from pathlib import Path
from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from typing import Any

class PromptBuilder:
    def __init__(self, base_dir: Path):
        self.base = base_dir
        self.env = Environment(
            loader=FileSystemLoader(str(base_dir)),
            autoescape=select_autoescape(),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )

    def render(self, template_name: str, **kwargs: Any) -> str:
        tpl = self.env.get_template(template_name)
        return tpl.render(**kwargs)
