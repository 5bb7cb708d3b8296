import argparse, sys, json
from .accessor import HDFFile
from .catalog import list_datasets, show_dataset_info
from .vs import VSFile, vdata_table

def main(argv=None):
    parser = argparse.ArgumentParser(description="metahdf command‑line interface")
    sub = parser.add_subparsers(dest="cmd")

    # ls
    p_ls = sub.add_parser("ls", help="列出数据集")
    p_ls.add_argument("file")

    # info
    p_info = sub.add_parser("info", help="目录 / 数据集详情 (JSON)")
    p_info.add_argument("file")
    p_info.add_argument("dataset", nargs="?")

    # attrs
    p_attrs = sub.add_parser("attrs", help="列出全局或数据集属性名")
    p_attrs.add_argument("file")
    p_attrs.add_argument("dataset", nargs="?")

    # vdata
    p_vd = sub.add_parser("vdata", help="列出 Vdata")
    p_vd.add_argument("file")

    args = parser.parse_args(argv)

    if args.cmd in {"ls", "info", "attrs"}:
        with HDFFile(args.file) as hdf:
            if args.cmd == "ls":
                for n in list_datasets(hdf.catalog):
                    print(n)
            elif args.cmd == "info":
                info = (show_dataset_info(hdf.catalog, args.dataset)
                        if args.dataset else hdf.catalog.describe())
                print(json.dumps(info, indent=2, ensure_ascii=False))
            else:
                for n in hdf.attribute_names(args.dataset):
                    print(n)
    elif args.cmd == "vdata":
        with VSFile(args.file) as vs:
            print(vdata_table(vs.vdata_info()).to_string(index=False))
    else:
        parser.print_help()
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
