from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from cold_turkey_kit.errors import ExternalEnumerationError
from cold_turkey_kit.schema import app_display_name

# Executables of the Windows Store apps Cold Turkey can block as "win10:" entries
KNOWN_STORE_APPS = [
    "3DViewer.exe",
    "AccountsControlHost.exe",
    "AddSuggestedFoldersToLibraryDialog.exe",
    "AppInstaller.exe",
    "AppInstallerCLI.exe",
    "AppInstallerElevatedAppServiceClient.exe",
    "AppInstallerPythonRedirector.exe",
    "AppResolverUX.exe",
    "AssignedAccessLockApp.exe",
    "AuthenticationManager.exe",
    "BioEnrollmentHost.exe",
    "Calculator.exe",
    "CallingShellApp.exe",
    "CameraBarcodeScannerPreview.exe",
    "candycrushsaga.exe",
    "CapturePicker.exe",
    "CHXSmartScreen.exe",
    "Cortana.exe",
    "CredDialogHost.exe",
    "FileExplorer.exe",
    "FilePicker.exe",
    "GameBar.exe",
    "GameBarElevatedFT.exe",
    "GameBarFTServer.exe",
    "GetHelp.exe",
    "HxAccounts.exe",
    "HxCalendarAppImm.exe",
    "HxOutlook.exe",
    "HxTsr.exe",
    "LocalBridge.exe",
    "LockApp.exe",
    "Maps.exe",
    "Microsoft.AAD.BrokerPlugin.exe",
    "Microsoft.AsyncTextService.exe",
    "Microsoft.ECApp.exe",
    "Microsoft.MicrosoftSolitaireCollection.exe",
    "Microsoft.Msn.News.exe",
    "Microsoft.Msn.Weather.exe",
    "Microsoft.Notes.exe",
    "Microsoft.Photos.exe",
    "Microsoft.Wallet.exe",
    "Microsoft.WebMediaExtensions.exe",
    "MixedRealityPortal.Brokered.exe",
    "MixedRealityPortal.exe",
    "Music.UI.exe",
    "myling.exe",
    "NarratorQuickStart.exe",
    "NcsiUwpApp.exe",
    "onenoteim.exe",
    "onenoteshare.exe",
    "OOBENetworkCaptivePortal.exe",
    "OOBENetworkConnectionFlow.exe",
    "PaintStudio.View.exe",
    "PeopleApp.exe",
    "PeopleExperienceHost.exe",
    "Photos.DLC.Main.exe",
    "Photos.DLC.MediaEngine.exe",
    "PilotshubApp.exe",
    "PinningConfirmationDialog.exe",
    "Print3D.exe",
    "ScreenClippingHost.exe",
    "ScreenSketch.exe",
    "SearchApp.exe",
    "SecHealthUI.exe",
    "SecureAssessmentBrowser.exe",
    "ShellExperienceHost.exe",
    "Skype.exe",
    "Solitaire.exe",
    "SoundRec.exe",
    "SpeechToTextOverlay64-Retail.exe",
    "Spotify.exe",
    "SpotifyMigrator.exe",
    "SpotifyStartupTask.exe",
    "StartMenuExperienceHost.exe",
    "StoreDesktopExtension.exe",
    "StoreExperienceHost.exe",
    "TCUI-App.exe",
    "TextInputHost.exe",
    "Time.exe",
    "UndockedDevKit.exe",
    "Video.UI.exe",
    "VideoProjectsLauncher.exe",
    "View3D.ResourceResolver.exe",
    "WebViewHost.exe",
    "WhatsNew.Store.exe",
    "Win32Bridge.Server.exe",
    "Win32WebViewHost.exe",
    "WindowsCamera.exe",
    "WindowsPackageManagerServer.exe",
    "WinStore.App.exe",
    "WpcUapApp.exe",
    "XBox.TCUI.exe",
    "XboxApp.exe",
    "XboxIdp.exe",
    "XGpuEjectDialog.exe",
    "YourPhone.exe",
    "YourPhoneAppProxy.exe",
    "YourPhoneServer.exe",
]


@dataclass(frozen=True)
class InstalledApp:
    identifier: str
    display_name: str


class PlatformAppCatalog:
    """Lists the Store apps that can be added to a block."""

    def __init__(self, apps_dir: Path | None = None):
        self.apps_dir = apps_dir

    def list_installed_apps(self) -> list[InstalledApp]:
        if self.apps_dir is None or not self.apps_dir.exists():
            logger.debug("No apps directory configured, using the built-in Store app list")
            names = KNOWN_STORE_APPS
        else:
            try:
                names = sorted(
                    {path.name for path in self.apps_dir.rglob("*.exe")}, key=str.lower
                )
            except OSError as e:
                raise ExternalEnumerationError(
                    f"Cannot list apps in {self.apps_dir}: {e}"
                ) from e
            logger.debug(f"Found {len(names)} apps in {self.apps_dir}")

        return [InstalledApp(name, app_display_name(name)) for name in names]
