from ..resource import create_resource
from .adapters import process_redirected_url
from .detect_resource_type import detect_resource_type
from .download_resource import (
    download_resource,
    download_streaming_resource,
    read_or_copy_local_resource,
)
from .process_css import process_css
from .process_html import process_html
from .process_site_map import process_site_map
from .process_svg import process_svg
from .save_to_disk import save_html_to_disk, save_resource_to_disk
from .skip_links import skip_links
from .types import LifeCycle


def default_life_cycle() -> LifeCycle:
    """A fresh copy of the default stages."""
    return LifeCycle(
        init=[],
        link_redirect=[skip_links],
        detect_resource_type=[detect_resource_type],
        create_resource=create_resource,
        process_before_download=[],
        download=[
            download_resource,
            download_streaming_resource,
            read_or_copy_local_resource,
        ],
        process_after_download=[
            process_redirected_url,
            process_html,
            process_svg,
            process_css,
            process_site_map,
        ],
        save_to_disk=[save_html_to_disk, save_resource_to_disk],
        dispose=[],
    )
