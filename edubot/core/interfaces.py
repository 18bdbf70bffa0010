"""
Core interfaces and abstract base classes for EDUBot.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from edubot.core.types import ExecutionLogEntry, Record, Step, Workflow


class BrowserPort(ABC):
    """
    Abstract interface for the browser session a run drives.

    Element handles returned by the query methods are opaque to the engine
    and only ever passed back into the element action methods.
    """

    @abstractmethod
    async def launch(self, headless: Optional[bool] = None) -> None:
        """Open the browser session."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the browser session and release its resources."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether a session is currently open."""
        pass

    @abstractmethod
    async def navigate(self, url: str, wait_until: Optional[str] = None) -> None:
        """
        Navigate to a URL.

        Args:
            url: Absolute URL
            wait_until: Load condition to wait for (load, domcontentloaded, networkidle)
        """
        pass

    @abstractmethod
    async def get_current_url(self) -> str:
        """Get the current page URL."""
        pass

    @abstractmethod
    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """
        Evaluate a JavaScript expression or function in the page.

        Args:
            expression: JavaScript source
            arg: Optional JSON-serializable argument passed to a function expression

        Returns:
            The JSON-serializable result
        """
        pass

    @abstractmethod
    async def screenshot(self, path: Path, full_page: bool = True) -> None:
        """Save a screenshot of the current page."""
        pass

    @abstractmethod
    async def wait(self, milliseconds: int) -> None:
        """Wait for specified duration."""
        pass

    @abstractmethod
    async def query_selector(self, selector: str) -> Optional[Any]:
        """Find the first element matching a CSS selector."""
        pass

    @abstractmethod
    async def query_xpath(self, xpath: str) -> Optional[Any]:
        """Find the first element matching an XPath expression."""
        pass

    @abstractmethod
    async def query_child(self, parent_selector: str, index: int) -> Optional[Any]:
        """Find the direct child at ``index`` of the element matching ``parent_selector``."""
        pass

    @abstractmethod
    async def click_element(self, element: Any) -> None:
        """Scroll an element into view and click it."""
        pass

    @abstractmethod
    async def type_into(
        self, element: Any, text: str, delay_ms: int = 0, clear: bool = True
    ) -> None:
        """
        Type text into an element.

        Args:
            element: Element handle from a query method
            text: Text to type
            delay_ms: Delay between keystrokes
            clear: Remove existing content first
        """
        pass

    @abstractmethod
    async def select_value(self, element: Any, value: str) -> None:
        """Select an option by value and fire change notifications."""
        pass


class PersistencePort(ABC):
    """Abstract interface for workflow storage used by the executor."""

    @abstractmethod
    async def get_workflow(self, workflow_id: int) -> Optional[Workflow]:
        """Load a workflow by id."""
        pass

    @abstractmethod
    async def get_steps_by_workflow(self, workflow_id: int) -> List[Step]:
        """Load the steps of a workflow in ascending order."""
        pass

    @abstractmethod
    async def get_data_source_records(self, data_source_id: int) -> Optional[List[Record]]:
        """
        Load the records of a data source.

        Returns:
            The records, or None when the data source does not exist
        """
        pass

    @abstractmethod
    async def create_execution_log(self, entry: ExecutionLogEntry) -> Any:
        """Create an execution log row and return its id."""
        pass

    @abstractmethod
    async def update_execution_log(self, log_id: Any, patch: Dict[str, Any]) -> None:
        """
        Apply a partial update to an execution log row.

        Recognized keys: status, message, error_message, processed_records,
        success_count, error_count.
        """
        pass

    @abstractmethod
    async def delete_from_queue(self, record_id: Any) -> None:
        """Remove a processed record from the work queue."""
        pass

    @abstractmethod
    async def update_queue_status(
        self, record_id: Any, status: str, error: Optional[str] = None
    ) -> None:
        """Mark a queued record with a status and optional error message."""
        pass


class ConfigProvider(ABC):
    """Abstract interface for configuration management."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        pass

    @abstractmethod
    def get_required(self, key: str) -> Any:
        """Get required configuration value, raise if missing."""
        pass

    @abstractmethod
    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        pass
