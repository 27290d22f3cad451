from abc import ABC, abstractmethod
from typing import Optional

from ..domain.models import SignedSubmission


class SigningGateway(ABC):
    """
    Wallet capability that turns a raw transaction into a submitted one.

    ``sign_and_submit`` may suspend indefinitely while the wallet UI waits for
    user approval; the wallet owns cancellation. Rejection surfaces as
    SigningRejected (or whatever the wallet raises).
    """

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @property
    @abstractmethod
    def address(self) -> Optional[str]:
        ...

    @abstractmethod
    async def sign_and_submit(self, transaction: bytes) -> SignedSubmission:
        ...
