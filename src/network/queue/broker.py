from dramatiq.broker import MessageProxy
from dramatiq.brokers.stub import StubBroker

__all__ = ['EagerBroker', 'StubBroker']


class EagerBroker(StubBroker):
    """
    Runs actors inline on enqueue, handy under a debugger or for one-off scripts
    """

    def process_message(self, message):
        message_proxy = MessageProxy(message=message)
        try:
            actor = self.get_actor(message.actor_name)
            actor(*message.args, **message.kwargs)
        except Exception as exc:
            message_proxy.stuff_exception(exc)
            message_proxy.fail()
            raise

    def enqueue(self, message, *, delay=None):
        self.process_message(message)
        return message
