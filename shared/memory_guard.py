import logging
import psutil

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class MemoryMonitor:
    """Log process memory usage at pipeline milestones."""
    
    def __init__(self, log_interval=50 * MB, enabled=True):
        self.log_interval = log_interval
        self.enabled = enabled
        self._next_checkpoint = log_interval
        self._process = None
        
        if enabled:
            try:
                self._process = psutil.Process()
            except psutil.Error as e:
                logger.warning(f"Process memory information not available ({e}). Memory logging disabled.")
                self.enabled = False
    
    def get_memory_usage(self):
        """Return current memory figures of this process in MB."""
        if not self.enabled:
            return {}
        
        try:
            info = self._process.memory_info()
        except psutil.Error as e:
            logger.error(f"Error reading process memory: {e}")
            return {}
        return {
            "rss": round(info.rss / MB, 2),
            "vms": round(info.vms / MB, 2),
        }
    
    def log_usage(self, label):
        """Log a labelled memory snapshot and return it."""
        usage = self.get_memory_usage()
        if usage:
            details = ", ".join(f"{key}: {value} MB" for key, value in usage.items())
            logger.info(f"=== {label} === {details}")
        return usage
    
    def checkpoint(self, processed_bytes):
        """Log once every ``log_interval`` processed bytes."""
        if not self.enabled or processed_bytes < self._next_checkpoint:
            return False
        
        self.log_usage(f"processed {processed_bytes / MB:.2f}MB")
        while self._next_checkpoint <= processed_bytes:
            self._next_checkpoint += self.log_interval
        return True
