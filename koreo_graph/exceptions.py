class KoreoGraphError(Exception):
    """Base class for errors raised while building a workflow graph."""


class CircularReferenceError(KoreoGraphError):
    """
    Raised when a workflow (directly or through its sub-workflows) embeds itself.

    Attributes:
        chain: The (namespace, workflow id) pairs on the build stack, ending
            with the pair that was re-entered.
    """

    def __init__(self, chain: list[tuple[str, str]]):
        self.chain = chain
        path = " -> ".join(f"{namespace}/{name}" for namespace, name in chain)
        super().__init__(f"Circular sub-workflow reference: {path}")


class MaxDepthExceededError(KoreoGraphError):
    """Raised when sub-workflow nesting goes deeper than BuildOptions.max_depth."""

    def __init__(self, namespace: str, workflow_id: str, max_depth: int):
        self.namespace = namespace
        self.workflow_id = workflow_id
        self.max_depth = max_depth
        super().__init__(
            f"Sub-workflow nesting exceeded max_depth={max_depth} "
            f"at {namespace}/{workflow_id}"
        )
