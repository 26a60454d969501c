"""HTTP API."""

from leadcrm.api.app import create_app
