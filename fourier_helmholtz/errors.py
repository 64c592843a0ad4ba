"""Error types for the boundary-element layer.

Configuration errors are fatal: they signal a mis-built mesh or a misuse of
the element API (wrong bulk element type, default construction, copying) and
are raised at the point of detection, never deferred to assembly time.
"""

from typing import Optional


class ConfigurationError(ValueError):
    """Fatal mis-configuration of an element.

    Parameters
    ----------
    message : str
        What went wrong.
    element : object, optional
        Element (or class) involved; its class name is added to the message.
    context : str, optional
        Calling context, e.g. ``"FluxElement.__init__"``.
    """

    def __init__(
        self,
        message: str,
        element: Optional[object] = None,
        context: Optional[str] = None,
    ) -> None:
        self.element_class = None
        if element is not None:
            cls = element if isinstance(element, type) else type(element)
            self.element_class = cls.__name__
        self.context = context

        parts = [message]
        if self.element_class is not None:
            parts.append(f"element class: {self.element_class}")
        if context is not None:
            parts.append(f"context: {context}")
        super().__init__(" | ".join(parts))
