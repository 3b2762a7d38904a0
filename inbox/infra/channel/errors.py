class ChannelDispatchError(Exception):
    """The provider did not accept an outbound message."""

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
