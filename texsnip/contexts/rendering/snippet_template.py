"""
Snippet Template

Wraps a LaTeX fragment and its preamble into a complete standalone document.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template, TemplateNotFound
from omegaconf import OmegaConf

load_dotenv()
TEMPLATES_PATH = Path(
    os.getenv("TEXSNIP_TEMPLATES_PATH", Path(__file__).resolve().parent / "templates")
)


class SnippetTemplate:
    """
    Standalone document template for snippets.

    Each template lives in {templates_path}/{name}/ as template.tex.jinja plus
    defaults.yaml with the layout variables (document class, options, packages,
    minipage width). Templates use custom delimiters to avoid conflicts with
    LaTeX syntax:
    - Variable: <<< var >>>
    - Block: <%% block %%>
    - Comment: <# comment #>
    """

    def __init__(self, name: str = "snippet", templates_path: Optional[Path] = None):
        if templates_path is None:
            templates_path = TEMPLATES_PATH

        self.name = name
        self.templates_path = Path(templates_path)

        self.env = Environment(
            loader=FileSystemLoader(str(self.templates_path)),
            # Catches silent failures
            undefined=StrictUndefined,
            variable_start_string="<<<",
            variable_end_string=">>>",
            block_start_string="<%%",
            block_end_string="%%>",
            comment_start_string="<#",
            comment_end_string="#>",
            # Preserve whitespace (important for LaTeX)
            trim_blocks=False,
            lstrip_blocks=False,
            keep_trailing_newline=True,
        )

        template_file = f"{name}/template.tex.jinja"
        try:
            self.template: Template = self.env.get_template(template_file)
        except TemplateNotFound as e:
            raise TemplateNotFound(
                f"Snippet template '{name}' not found at {self.templates_path / template_file}"
            ) from e

        self.defaults = self._load_defaults()

    def _load_defaults(self) -> Dict[str, Any]:
        defaults_path = self.templates_path / self.name / "defaults.yaml"
        if not defaults_path.exists():
            return {}
        return OmegaConf.to_container(OmegaConf.load(defaults_path), resolve=True)

    def render(self, source: str, preamble: str = "", **overrides: Any) -> str:
        """
        Build the complete LaTeX document for a snippet.

        Args:
            source: Fragment placed inside the minipage
            preamble: Extra preamble lines (\\usepackage, macros) before \\begin{document}
            **overrides: Replace any defaults.yaml variable for this render

        Returns:
            LaTeX document source
        """
        variables = {**self.defaults, **overrides}
        class_options = variables.get("class_options", [])
        if not isinstance(class_options, str):
            variables["class_options"] = ",".join(str(option) for option in class_options)

        return self.template.render(source=source, preamble=preamble, **variables)
