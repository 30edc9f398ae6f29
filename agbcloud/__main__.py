import sys
import traceback

from tabulate import tabulate


def cli(args):
    """
    Command line interface for the AgbCloud CLI.

    Args:
        args (list): list of CLI arguments to parse.
    """
    import argparse

    parser = argparse.ArgumentParser( prog = 'agbcloud' )
    parser.add_argument( 'action',
                         type = str,
                         help = 'action, currently supported "login" (authenticate in your browser and store the session), "logout" (remove the stored session), "who" (show the stored session), "version"' )

    # Hack around a bit so that we can pass the help
    # to the proper sub-command line.
    rootArgs = args[ 1: 2 ]

    # Everything after the command name and the action name that is passed
    # to the action argument parser.
    actionArgs = args[ 2: ]
    args = parser.parse_args( rootArgs )

    if args.action.lower() == 'version':
        from . import __version__
        print( "AgbCloud CLI Version %s" % ( __version__, ) )
    elif args.action.lower() == 'login':
        parser = argparse.ArgumentParser( prog = 'agbcloud login',
                                          description = 'Authenticate with AgbCloud using OAuth in your browser.' )
        parser.parse_args( actionArgs )

        from .oauth_login import perform_oauth_login
        perform_oauth_login()
    elif args.action.lower() == 'logout':
        parser = argparse.ArgumentParser( prog = 'agbcloud logout' )
        parser.parse_args( actionArgs )

        from .config import Config
        config = Config.load()
        if config.clear_tokens():
            print( "Stored session removed from: %s" % ( config.path, ) )
        else:
            print( "No stored session found." )
    elif args.action.lower() == 'who':
        parser = argparse.ArgumentParser( prog = 'agbcloud who' )
        parser.parse_args( actionArgs )

        from .config import Config
        from .term_utils import mask_secret
        config = Config.load()
        tokens = config.get_tokens()
        rows = [
            [ 'config', config.path ],
            [ 'endpoint', config.endpoint ],
            [ 'login token', mask_secret( tokens.login_token ) ],
            [ 'session id', mask_secret( tokens.session_id ) ],
            [ 'keep alive token', mask_secret( tokens.keep_alive_token ) ],
            [ 'expires at', tokens.expires_at or '(empty)' ],
        ]
        print( tabulate( rows, tablefmt = 'grid' ) )
    else:
        raise Exception( 'invalid action: %s' % ( args.action.lower(), ) )

def main():
    args = sys.argv

    # Hack since we don't have access to parsed args here and parsing itself may fail
    debug_mode = False
    if "--debug" in args:
        debug_mode = True
        args.remove("--debug")

    if "--debug-request" in args:
        args.remove("--debug-request")
        from .client import set_default_print_debug_fn
        set_default_print_debug_fn(lambda x: print(x, file=sys.stderr))

    try:
        cli(args)
    except KeyboardInterrupt:
        print("\nCancelled by user.", file=sys.stderr)
        return 1
    except Exception as e:
        print("Error:", e, file=sys.stderr)

        if debug_mode:
            print(traceback.format_exc(), file=sys.stderr)

        return 1

if __name__ == "__main__":
    sys.exit(main())
