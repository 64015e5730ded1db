from jinja2 import Environment, FileSystemLoader, StrictUndefined


class Renderer:
    _env: Environment | None = None

    @classmethod
    def initialize(cls, template_dir: str) -> None:
        """
        Set up the Jinja2 environment used for message bodies.

        Templates are loaded from `template_dir`, rendered asynchronously and
        autoescaped. Missing variables raise instead of rendering empty.

        Args:
            template_dir (str): The directory containing the template files.
        """
        cls._env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=True,
            enable_async=True,
            undefined=StrictUndefined,
        )

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._env is not None

    @classmethod
    async def render_template(
        cls, template_name: str, context: dict | None = None
    ) -> str:
        """
        Render a template with the given context.

        Args:
            template_name (str): Path of the template relative to the template dir.
            context (dict | None): Variables passed to the template.

        Returns:
            str: The rendered template.

        Raises:
            TemplateNotFound: If the specified template cannot be found.
            TemplateError: If an error occurs during template rendering.
            RuntimeError: If the renderer has not been initialized.
        """
        if cls._env is None:
            raise RuntimeError("Renderer not initialized. Call initialize() first.")
        template = cls._env.get_template(template_name)
        return await template.render_async(**(context or {}))


__all__ = ["Renderer"]
