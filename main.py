#!/usr/bin/env python3
"""
MeteoraRebalancer - Main Application
Keeps one Meteora DLMM position centered on the current price
"""
import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from alert_manager import AlertType, TelegramAlertManager
from automated_rebalancer import AutomatedRebalancer
from balance_logger import BalanceLogger, create_storage
from config import Config
from errors import InsufficientFundsForPositionFees, PoolMetadataError
from ledger import GatewayFactory, LedgerGateway, PaperGateway
from lp_position_manager import LPPositionManager
from meteora_client import MeteoraApiClient
from utils import Logger

logger = logging.getLogger(__name__)


class RebalancerApp:
    """Main application class for the automated rebalancer"""

    def __init__(self, config: Config = None, paper: bool = False):
        """Initialize the application"""
        self.config = config or Config()
        self.paper = paper
        self.mode = 'paper' if paper else 'live'

        # Validate configuration
        try:
            self.config.validate_config(paper=paper)
            logger.info("✅ Configuration validation passed")
        except ValueError as e:
            logger.error(f"❌ Configuration validation failed: {e}")
            sys.exit(1)

        if not paper and self.config.is_default_rpc():
            logger.error("❌ Default Solana RPC URL is not supported. "
                         "Please set SOLANA_RPC_URL to a dedicated endpoint")
            sys.exit(1)

        self.pool_client = MeteoraApiClient(self.config)
        self.alert_manager = TelegramAlertManager(self.config)
        self.balance_logger = BalanceLogger(storage=create_storage(self.config))
        self.gateway: Optional[LedgerGateway] = None
        self.position_manager: Optional[LPPositionManager] = None
        self.rebalancer: Optional[AutomatedRebalancer] = None
        self.running = False
        self.shutdown_reason = "Manual shutdown"

        logger.info("RebalancerApp initialized")

    async def _create_gateway(self) -> LedgerGateway:
        if not self.paper:
            return GatewayFactory.create_gateway(self.config.LEDGER_GATEWAY, self.config)

        gateway = GatewayFactory.create_gateway('paper', self.config)
        if isinstance(gateway, PaperGateway):
            details = await self.pool_client.get_pool_details(self.config.METEORA_POOL_ADDRESS)
            gateway.seed_pool(
                self.config.METEORA_POOL_ADDRESS,
                details.asset_a_mint,
                details.asset_b_mint,
                details.bin_step,
            )
        return gateway

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.signal_handler, signum)
            except NotImplementedError:
                # Event loops without signal support fall back to KeyboardInterrupt
                pass

    def signal_handler(self, signum: int) -> None:
        """Handle shutdown signals"""
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name}, shutting down gracefully...")
        self.shutdown_reason = f"Received {signal_name}"
        self.stop()

    async def initialize(self) -> bool:
        """
        Build the engine and adopt or create the position

        Returns:
            True on success, False on a fatal startup failure
        """
        try:
            self.gateway = await self._create_gateway()
        except (ValueError, PoolMetadataError) as e:
            logger.error(f"❌ Failed to create ledger gateway: {e}")
            await self.alert_manager.send_alert(AlertType.ERROR, f"Failed to create ledger gateway: {e}")
            return False

        self.position_manager = LPPositionManager(
            self.config, self.gateway, self.pool_client, self.alert_manager, self.balance_logger
        )
        self.rebalancer = AutomatedRebalancer(
            self.config, self.position_manager, self.gateway, self.alert_manager, self.balance_logger
        )

        pool_address = self.config.METEORA_POOL_ADDRESS
        try:
            details = await self.pool_client.get_pool_details(pool_address)
            pair = f"{details.asset_a_symbol}-{details.asset_b_symbol}"
        except PoolMetadataError:
            pair = 'unknown'
        await self.alert_manager.send_startup_notification(pool_address, pair, self.mode)

        try:
            created = await self.rebalancer.initialize()
        except InsufficientFundsForPositionFees as e:
            logger.error(f"❌ {e}")
            logger.error(f"Please fund the wallet with at least {self.config.NATIVE_TOKEN_FEE_BUFFER} "
                         f"{self.config.NATIVE_TOKEN_SYMBOL} to cover position creation fees")
            return False
        except Exception as e:
            logger.error(f"❌ Error loading initial state: {e}")
            await self.alert_manager.send_alert(AlertType.ERROR, f"In load_initial_state: {e}")
            return False

        if created:
            logger.info("Created a new position around the current price")
        else:
            logger.info("Tracking the existing position")
        return True

    async def run(self, once: bool = False, initial_delay: float = 10.0) -> int:
        """
        Run the rebalancer until stopped

        Args:
            once: Run a single decision cycle and exit
            initial_delay: Seconds to wait between startup and the first cycle

        Returns:
            Process exit code
        """
        self.running = True
        logger.info("Starting Meteora DLMM Rebalancer")
        logger.info(f"Mode: {self.mode}")
        logger.info(f"Configuration: {self.config.get_summary()}")

        try:
            if not await self.initialize():
                return 1

            if once:
                await self.rebalancer.evaluate()
                logger.info(f"Status: {self.rebalancer.get_status()}")
                return 0

            self._install_signal_handlers()
            if initial_delay > 0:
                logger.info(f"Waiting {initial_delay:g}s before the first cycle...")
                await asyncio.sleep(initial_delay)

            if self.running:
                logger.info("Automated rebalancer is now running...")
                logger.info("Press Ctrl+C to stop")
                await self.rebalancer.start()

            await self.alert_manager.send_shutdown_notification(self.shutdown_reason)
            return 0
        finally:
            if self.gateway is not None:
                await self.gateway.close()

    def stop(self):
        """Stop the automated rebalancer"""
        self.running = False
        if self.rebalancer and self.rebalancer.is_running:
            logger.info("Stopping automated rebalancer...")
            self.rebalancer.stop()
            logger.info("Automated rebalancer stopped")

    def get_status(self) -> dict:
        """Get current status"""
        if self.rebalancer:
            return self.rebalancer.get_status()
        return {'is_running': False}


def main():
    """Main function with mode selection"""
    parser = argparse.ArgumentParser(
        description='MeteoraRebalancer - keeps a Meteora DLMM position centered on the current price',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Live mode (default), using the gateway named by LEDGER_GATEWAY
  python main.py

  # Paper trading against live pool prices
  python main.py --paper

  # Single decision cycle, then exit
  python main.py --paper --once --initial-delay 0
        """
    )

    parser.add_argument('--paper', action='store_true',
                        help='Simulate the wallet and the pool in memory instead of trading')
    parser.add_argument('--once', action='store_true',
                        help='Run one decision cycle after startup and exit')
    parser.add_argument('--log-level', default=Config.LOG_LEVEL,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help=f'Logging level (default: {Config.LOG_LEVEL})')
    parser.add_argument('--initial-delay', type=float, default=10.0,
                        help='Seconds to wait before the first monitoring cycle (default: 10)')

    args = parser.parse_args()

    Logger.setup_logging(level=args.log_level, log_file=Config.LOG_FILE)

    print("🤖 MeteoraRebalancer")
    print("=" * 50)

    app = RebalancerApp(paper=args.paper)
    try:
        exit_code = asyncio.run(app.run(once=args.once, initial_delay=args.initial_delay))
    except KeyboardInterrupt:
        print("\n🛑 Shutdown requested by user")
        exit_code = 0

    print("👋 Goodbye!")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
