from .main import AbstractDownloader
from .worker import run_post_download


class SingleThreadDownloader(AbstractDownloader):
    """Downloads and post-processes every resource in this process."""

    def download_and_process_resource(self, res) -> None:
        downloaded = self.download(res)
        if downloaded is None:
            return
        self.mark_downloaded(res)
        self.handle_outcome(downloaded, run_post_download(self.pipeline, downloaded))
