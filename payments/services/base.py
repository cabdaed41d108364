from abc import ABC, abstractmethod


class PaymentProvider(ABC):
    """A push-payment gateway: start a payment, then ask how it went."""

    @abstractmethod
    def initiate(self, phone, amount, account_reference, transaction_desc):
        raise NotImplementedError

    @abstractmethod
    def query(self, checkout_request_id):
        raise NotImplementedError
