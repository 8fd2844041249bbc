class ComposerError(Exception):
    pass


class ValidationError(ComposerError):
    pass


class ParsingError(ComposerError):
    pass


class FileIOError(ComposerError):
    pass


class UnreadablePdf(ParsingError):
    pass


class InvalidOrder(ValidationError):
    pass


class RenderFailure(ComposerError):
    def __init__(self, page_id: str, message: str) -> None:
        super().__init__(f"{page_id}: {message}")
        self.page_id = page_id


class MergeFailed(ComposerError):
    pass


class DeliveryFailure(ComposerError):
    pass
