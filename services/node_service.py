from core import console
from core.config import ResolvedConfig
from core.result import Result
from services.cache_service import RedisController
from services.pm2_client import Pm2Client
from services.status_service import StatusReporter


class NodeController:
    """
    Runs the Lisk node under pm2 using the network's descriptor.
    The cache comes up before the node and goes down after it.
    """
    def __init__(self, node: ResolvedConfig, pm2: Pm2Client, cache: RedisController, status: StatusReporter):
        self.node = node
        self.pm2 = pm2
        self.cache = cache
        self.status = status

    def start(self) -> Result:
        self.cache.start()
        if not self.pm2.start(self.node.descriptor_path):
            console.failure("Failed to start Lisk.")
            return Result.fail("pm2 start failed")

        console.success("Lisk started successfully.")
        self.status.check(wait=True)
        return Result.success()

    def stop(self) -> Result:
        # pm2 exits non-zero when the app was not registered; that still counts as stopped
        self.pm2.delete(self.node.descriptor_path)
        console.success("Lisk stopped successfully.")
        return self.cache.stop()

    def reload(self) -> Result:
        console.info("Stopping Lisk to reload PM2 config")
        self.stop()
        return self.start()

    def cleanup(self):
        self.pm2.cleanup()
