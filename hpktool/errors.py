class HPKError(Exception):
    pass


class TruncatedInput(HPKError):
    pass


class MalformedArchive(HPKError):
    pass


class MalformedHeader(MalformedArchive):
    pass


class HeaderMagicMismatch(MalformedHeader):
    pass


class TruncatedHeader(MalformedHeader, TruncatedInput):
    pass


class IndexOutOfRange(MalformedArchive, IndexError):
    pass


class CyclicReference(MalformedArchive):
    pass


class UnknownEntryKind(MalformedArchive):
    pass


class TrailingOrMisalignedData(MalformedArchive):
    pass


class DecompressionSizeMismatch(MalformedArchive):
    pass


class BlockIndexOutOfRange(HPKError, IndexError):
    pass


class UnencodableArchive(HPKError):
    pass
