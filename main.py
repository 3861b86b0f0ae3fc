# Data Streams SDK - Demo Entry Point
# Streams real-time reports for the configured feeds

"""
Data Streams Demo

Flow:
1. Load config (config/config.yaml, config/secrets.env, CHAINLINK_* env)
2. Fetch the latest report over REST for each configured feed
3. Stream updates over the WebSocket for `demo.stream_seconds`
4. Disconnect gracefully (also on SIGINT / SIGTERM)
"""

import asyncio
import signal

from datastreams.connection.rest_client import DataStreamsClient
from datastreams.connection.websocket_client import DataStreamsWebSocket
from datastreams.errors import ConfigurationError, DataStreamsError
from datastreams.processors.message_parser import StreamMessage
from datastreams.utils.config import load_config, require_credentials, validate_config
from datastreams.utils.helpers import format_timestamp, mask_secret
from datastreams.utils.logger import setup_logger, set_level

shutdown_event = asyncio.Event()


def handle_shutdown(signum=None, frame=None):
    """Handle shutdown signals"""
    print("\n🛑 Received shutdown signal")
    shutdown_event.set()


class StreamingDemo:
    """
    Wires the REST client and the streaming session together
    """

    def __init__(self, config: dict, api_key: str, api_secret: str):
        self.config = config
        self.feeds = config.get('feeds', [])
        self.logger = setup_logger("StreamingDemo", "INFO")

        rest_config = config.get('rest', {})
        self.rest_client = DataStreamsClient(
            api_key=api_key,
            api_secret=api_secret,
            base_url=rest_config.get('base_url'),
            timeout=rest_config.get('timeout', 30),
        )

        ws_config = config.get('websocket', {})
        self.websocket_client = DataStreamsWebSocket(
            api_key=api_key,
            api_secret=api_secret,
            url=ws_config.get('url'),
            reconnect_delay=ws_config.get('reconnect_delay', 1),
            max_reconnect_attempts=ws_config.get('max_reconnect_attempts', 5),
            heartbeat_interval=ws_config.get('heartbeat_interval', 30),
            open_timeout=ws_config.get('open_timeout', 10),
            close_timeout=ws_config.get('close_timeout', 10),
        )
        self.websocket_client.on_connect(self.on_connect)
        self.websocket_client.on_disconnect(self.on_disconnect)
        self.websocket_client.on_message(self.on_message)
        self.websocket_client.on_error(self.on_error)

    async def on_connect(self):
        self.logger.info("WebSocket connected successfully")
        if self.feeds:
            self.logger.info(f"Streaming updates for feeds: {', '.join(self.feeds)}")

    async def on_disconnect(self):
        self.logger.info("WebSocket disconnected")

    async def on_message(self, message: StreamMessage):
        report = message.report
        self.logger.info(f"📨 Report {report.feed_id}")
        self.logger.info(f"   Price: {report.price}  Bid: {report.bid}  Ask: {report.ask}")
        if report.observations_timestamp:
            self.logger.info(f"   Observed: {format_timestamp(report.observations_timestamp)}")

    async def on_error(self, error: Exception):
        self.logger.error(f"WebSocket error: {error}")

    async def fetch_latest(self):
        for feed_id in self.feeds:
            try:
                report = await self.rest_client.get_latest_report(feed_id)
                self.logger.info(f"Latest {report.feed_id}: price={report.price}")
            except DataStreamsError as e:
                self.logger.error(f"REST fetch failed for {feed_id}: {e}")

    async def run(self):
        stream_seconds = self.config.get('demo', {}).get('stream_seconds', 30)
        try:
            await self.fetch_latest()
            await self.websocket_client.connect(self.feeds or None)

            self.logger.info(f"Listening for real-time updates for {stream_seconds} seconds...")
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=stream_seconds)
            except asyncio.TimeoutError:
                pass
        except DataStreamsError as e:
            self.logger.error(f"WebSocket connection error: {e}")
        finally:
            self.logger.info("Disconnecting...")
            await self.websocket_client.disconnect()
            await self.rest_client.close()
            self.logger.info(f"Session stats: {self.websocket_client.get_stats()}")


async def main():
    """Main entry point"""
    logger = setup_logger("Main", "INFO")

    logger.info("Loading configuration...")
    config = load_config()
    set_level(config.get('logging', {}).get('level', 'INFO'))

    is_valid, errors = validate_config(config)
    if not is_valid:
        logger.error("❌ Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        return

    try:
        api_key, api_secret = require_credentials(config)
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        return

    logger.info(f"API key loaded: {mask_secret(api_key)}")
    demo = StreamingDemo(config, api_key, api_secret)
    await demo.run()


if __name__ == "__main__":
    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
